from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from db.database import Base  # noqa: E402
from db.models import AmmoProfile, DOPELog, EnvironmentSnapshot, User  # noqa: E402
from services.ammo_service import create_ammo, update_ammo  # noqa: E402
from services.dope_log_service import create_dope_log, get_dope_log, update_dope_log  # noqa: E402
from services.environment_service import (  # noqa: E402
    create_environment,
    delete_environment,
    update_environment,
)
from services.errors import (  # noqa: E402
    ConflictError,
    InvalidReferenceError,
    NotFoundError,
    ValidationError,
)
from services.rifle_service import create_rifle, delete_rifle, get_rifle, update_rifle  # noqa: E402


def _new_db():
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)()


def _new_user(db, email="shooter@example.com") -> User:
    user = User(email=email, password_hash="x", name="Shooter")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _rifle_fields(**overrides):
    fields = {
        "name": "Tikka T3x",
        "caliber": ".308 Win",
        "barrel_length": 24,
        "twist_rate": "1:10",
        "zero_distance": 100,
        "optic_manufacturer": "Vortex",
        "optic_model": "Viper PST",
        "reticle_type": "EBR-2C",
        "click_value_type": "MIL",
        "click_value": 0.1,
        "scope_height": 1.5,
    }
    fields.update(overrides)
    return fields


def _ammo_fields(rifle_id, **overrides):
    fields = {
        "rifle_id": rifle_id,
        "name": "Gold Medal Match",
        "manufacturer": "Federal",
        "bullet_weight": 175,
        "bullet_type": "Sierra MatchKing HPBT",
        "ballistic_coefficient_g1": 0.505,
        "ballistic_coefficient_g7": 0.243,
        "muzzle_velocity": 2600,
    }
    fields.update(overrides)
    return fields


def _env_fields(**overrides):
    fields = {
        "temperature": 70,
        "humidity": 40,
        "pressure": 29.92,
        "altitude": 0,
        "wind_speed": 5,
        "wind_direction": 90,
    }
    fields.update(overrides)
    return fields


def _dope_fields(rifle_id, ammo_id, environment_id, **overrides):
    fields = {
        "rifle_id": rifle_id,
        "ammo_id": ammo_id,
        "environment_id": environment_id,
        "distance": 300,
        "distance_unit": "yards",
        "elevation_correction": 2.1,
        "windage_correction": 0.3,
        "correction_unit": "MIL",
        "target_type": "steel",
    }
    fields.update(overrides)
    return fields


def _setup_chain(db, user):
    rifle = create_rifle(db, user.id, _rifle_fields())
    ammo = create_ammo(db, user.id, _ammo_fields(rifle.id))
    env = create_environment(db, user.id, _env_fields())
    db.commit()
    return rifle, ammo, env


def test_rifle_create_trims_text_and_rejects_bad_twist_rate():
    db = _new_db()
    user = _new_user(db)

    rifle = create_rifle(db, user.id, _rifle_fields(name="  Tikka T3x  "))
    db.commit()
    assert rifle.id is not None
    assert rifle.name == "Tikka T3x"
    assert rifle.notes is None

    with pytest.raises(ValidationError) as exc:
        create_rifle(db, user.id, _rifle_fields(twist_rate="10"))
    assert [e["field"] for e in exc.value.errors] == ["twist_rate"]


def test_rifle_validation_reports_every_bad_field():
    db = _new_db()
    user = _new_user(db)

    with pytest.raises(ValidationError) as exc:
        create_rifle(db, user.id, _rifle_fields(barrel_length=0, click_value=1.5, click_value_type="IPHY"))
    fields = {e["field"] for e in exc.value.errors}
    assert fields == {"barrel_length", "click_value", "click_value_type"}


def test_rifle_update_patches_only_given_fields_and_empty_patch_is_noop():
    db = _new_db()
    user = _new_user(db)
    rifle = create_rifle(db, user.id, _rifle_fields())
    db.commit()

    updated = update_rifle(db, user.id, rifle.id, {"zero_distance": 200})
    db.commit()
    assert updated.zero_distance == 200
    assert updated.caliber == ".308 Win"

    again = update_rifle(db, user.id, rifle.id, {})
    assert again.zero_distance == 200
    assert again.name == "Tikka T3x"

    with pytest.raises(ValidationError):
        update_rifle(db, user.id, rifle.id, {"user_id": 99})


def test_records_are_invisible_to_other_users():
    db = _new_db()
    owner = _new_user(db)
    other = _new_user(db, email="other@example.com")
    rifle, ammo, env = _setup_chain(db, owner)

    with pytest.raises(NotFoundError):
        get_rifle(db, other.id, rifle.id)
    with pytest.raises(NotFoundError):
        update_environment(db, other.id, env.id, {"temperature": 50})
    with pytest.raises(NotFoundError):
        delete_rifle(db, other.id, rifle.id)


def test_ammo_under_foreign_rifle_is_invalid_reference():
    db = _new_db()
    owner = _new_user(db)
    other = _new_user(db, email="other@example.com")
    rifle = create_rifle(db, owner.id, _rifle_fields())
    db.commit()

    with pytest.raises(InvalidReferenceError) as exc:
        create_ammo(db, other.id, _ammo_fields(rifle.id))
    assert exc.value.field == "rifle_id"
    assert isinstance(exc.value, ValidationError)

    with pytest.raises(InvalidReferenceError):
        create_ammo(db, owner.id, _ammo_fields(rifle.id + 100))


def test_ammo_update_moving_to_foreign_rifle_is_rejected():
    db = _new_db()
    owner = _new_user(db)
    other = _new_user(db, email="other@example.com")
    rifle, ammo, _ = _setup_chain(db, owner)
    foreign_rifle = create_rifle(db, other.id, _rifle_fields())
    db.commit()

    with pytest.raises(InvalidReferenceError):
        update_ammo(db, owner.id, ammo.id, {"rifle_id": foreign_rifle.id})

    same = update_ammo(db, owner.id, ammo.id, {"rifle_id": rifle.id, "lot_number": "A-17"})
    assert same.lot_number == "A-17"


def test_environment_density_altitude_is_computed_unless_supplied():
    db = _new_db()
    user = _new_user(db)

    env = create_environment(db, user.id, _env_fields())
    assert env.density_altitude == 1320

    explicit = create_environment(db, user.id, _env_fields(density_altitude=2500))
    assert explicit.density_altitude == 2500

    updated = update_environment(db, user.id, env.id, {"temperature": 59})
    assert updated.density_altitude == 0

    kept = update_environment(db, user.id, explicit.id, {"humidity": 80})
    assert kept.density_altitude == 2500


def test_environment_rejects_out_of_range_readings():
    db = _new_db()
    user = _new_user(db)

    with pytest.raises(ValidationError) as exc:
        create_environment(db, user.id, _env_fields(wind_direction=360, humidity=101))
    assert {e["field"] for e in exc.value.errors} == {"wind_direction", "humidity"}


def test_dope_log_derives_yards_and_hit_percentage():
    db = _new_db()
    user = _new_user(db)
    rifle, ammo, env = _setup_chain(db, user)

    log = create_dope_log(
        db, user.id,
        _dope_fields(rifle.id, ammo.id, env.id, distance=100, distance_unit="meters", hit_count=3, shot_count=4),
    )
    db.commit()
    assert log.distance_yards == pytest.approx(109.361)
    assert log.hit_percentage == 75.0

    updated = update_dope_log(db, user.id, log.id, {"distance_unit": "yards"})
    db.commit()
    assert updated.distance_yards == 100
    assert updated.hit_percentage == 75.0

    cleared = update_dope_log(db, user.id, log.id, {"shot_count": None})
    assert cleared.hit_percentage is None


def test_dope_log_rejects_more_hits_than_shots():
    db = _new_db()
    user = _new_user(db)
    rifle, ammo, env = _setup_chain(db, user)

    with pytest.raises(ValidationError) as exc:
        create_dope_log(db, user.id, _dope_fields(rifle.id, ammo.id, env.id, hit_count=6, shot_count=5))
    assert exc.value.errors[0]["field"] == "hit_count"

    log = create_dope_log(db, user.id, _dope_fields(rifle.id, ammo.id, env.id, hit_count=5, shot_count=5))
    with pytest.raises(ValidationError):
        update_dope_log(db, user.id, log.id, {"shot_count": 4})


def test_dope_log_references_must_belong_to_caller():
    db = _new_db()
    owner = _new_user(db)
    other = _new_user(db, email="other@example.com")
    rifle, ammo, env = _setup_chain(db, owner)
    foreign_env = create_environment(db, other.id, _env_fields())
    db.commit()

    with pytest.raises(InvalidReferenceError) as exc:
        create_dope_log(db, owner.id, _dope_fields(rifle.id, ammo.id, foreign_env.id))
    assert exc.value.field == "environment_id"

    with pytest.raises(InvalidReferenceError):
        create_dope_log(db, other.id, _dope_fields(rifle.id, ammo.id, foreign_env.id))


def test_dope_log_empty_update_is_idempotent():
    db = _new_db()
    user = _new_user(db)
    rifle, ammo, env = _setup_chain(db, user)
    log = create_dope_log(
        db, user.id, _dope_fields(rifle.id, ammo.id, env.id), timestamp=datetime(2024, 5, 1, 8, 30)
    )
    db.commit()

    before = (log.distance_yards, log.elevation_correction, log.timestamp)
    same = update_dope_log(db, user.id, log.id, {})
    assert (same.distance_yards, same.elevation_correction, same.timestamp) == before
    assert same.timestamp == datetime(2024, 5, 1, 8, 30)


def test_environment_delete_blocked_while_logs_reference_it():
    db = _new_db()
    user = _new_user(db)
    rifle, ammo, env = _setup_chain(db, user)
    create_dope_log(db, user.id, _dope_fields(rifle.id, ammo.id, env.id))
    create_dope_log(db, user.id, _dope_fields(rifle.id, ammo.id, env.id, distance=500))
    db.commit()

    with pytest.raises(ConflictError) as exc:
        delete_environment(db, user.id, env.id)
    assert exc.value.count == 2
    assert "2 DOPE log(s)" in exc.value.message

    unused = create_environment(db, user.id, _env_fields(temperature=40))
    db.commit()
    delete_environment(db, user.id, unused.id)
    db.commit()
    assert db.query(EnvironmentSnapshot).filter(EnvironmentSnapshot.id == unused.id).first() is None


def test_rifle_delete_cascades_to_ammo_and_logs_but_keeps_environment():
    db = _new_db()
    user = _new_user(db)
    rifle, ammo, env = _setup_chain(db, user)
    log = create_dope_log(db, user.id, _dope_fields(rifle.id, ammo.id, env.id))
    db.commit()
    log_id = log.id

    delete_rifle(db, user.id, rifle.id)
    db.commit()

    assert db.query(AmmoProfile).count() == 0
    assert db.query(DOPELog).count() == 0
    assert db.query(EnvironmentSnapshot).count() == 1
    with pytest.raises(NotFoundError):
        get_dope_log(db, user.id, log_id)


@pytest.mark.parametrize("bad", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_numbers_are_validation_errors(bad):
    db = _new_db()
    user = _new_user(db)
    rifle, ammo, env = _setup_chain(db, user)

    with pytest.raises(ValidationError) as exc:
        create_environment(db, user.id, _env_fields(temperature=bad))
    assert exc.value.errors[0]["field"] == "temperature"
    assert "finite" in exc.value.errors[0]["message"]

    with pytest.raises(ValidationError) as exc:
        update_environment(db, user.id, env.id, {"pressure": bad})
    assert exc.value.errors[0]["field"] == "pressure"

    with pytest.raises(ValidationError) as exc:
        create_dope_log(db, user.id, _dope_fields(rifle.id, ammo.id, env.id, distance=bad))
    assert exc.value.errors[0]["field"] == "distance"

    with pytest.raises(ValidationError) as exc:
        create_dope_log(db, user.id, _dope_fields(rifle.id, ammo.id, env.id, group_size=bad))
    assert exc.value.errors[0]["field"] == "group_size"


def test_backfilled_timestamps_can_be_corrected_on_update():
    db = _new_db()
    user = _new_user(db)
    rifle, ammo, env = _setup_chain(db, user)
    log = create_dope_log(
        db, user.id, _dope_fields(rifle.id, ammo.id, env.id), timestamp=datetime(2024, 5, 1, 8, 30)
    )
    db.commit()

    moved = update_environment(db, user.id, env.id, {}, timestamp=datetime(2024, 4, 30, 6, 0))
    assert moved.timestamp == datetime(2024, 4, 30, 6, 0)
    assert moved.density_altitude == 1320

    local = datetime(2024, 5, 1, 9, 45, tzinfo=timezone(timedelta(hours=-6)))
    fixed = update_dope_log(db, user.id, log.id, {}, timestamp=local)
    db.commit()
    assert fixed.timestamp == datetime(2024, 5, 1, 15, 45)
    assert fixed.distance_yards == 300

    with pytest.raises(ValidationError):
        update_dope_log(db, user.id, log.id, {"timestamp": datetime(2024, 5, 2)})
