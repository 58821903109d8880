from datetime import datetime
from sqlalchemy import (
    Column, Integer, Text, Float, Boolean, ForeignKey, Index,
    DateTime, String,
)
from sqlalchemy.orm import relationship
from db.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(Text, nullable=False)
    name = Column(String(255))
    is_active = Column(Boolean, nullable=False, default=True)
    token_version = Column(Integer, nullable=False, default=0)
    last_login_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    rifles = relationship("RifleProfile", back_populates="user", cascade="all, delete-orphan")
    ammo_profiles = relationship("AmmoProfile", back_populates="user", cascade="all, delete-orphan")
    environment_snapshots = relationship("EnvironmentSnapshot", back_populates="user", cascade="all, delete-orphan")
    dope_logs = relationship("DOPELog", back_populates="user", cascade="all, delete-orphan")


class RifleProfile(Base):
    __tablename__ = "rifle_profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    caliber = Column(String(100), nullable=False)
    barrel_length = Column(Float, nullable=False)  # inches
    twist_rate = Column(String(20), nullable=False)  # "1:10"
    zero_distance = Column(Float, nullable=False)  # yards
    optic_manufacturer = Column(String(255), nullable=False)
    optic_model = Column(String(255), nullable=False)
    reticle_type = Column(String(100), nullable=False)
    click_value_type = Column(String(3), nullable=False)  # MIL | MOA
    click_value = Column(Float, nullable=False)
    scope_height = Column(Float, nullable=False)  # inches over bore
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="rifles")
    ammo_profiles = relationship("AmmoProfile", back_populates="rifle", cascade="all, delete-orphan")
    dope_logs = relationship("DOPELog", back_populates="rifle", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_rifle_profiles_user_id", "user_id"),
        Index("ix_rifle_profiles_caliber", "caliber"),
    )


class AmmoProfile(Base):
    __tablename__ = "ammo_profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    rifle_id = Column(Integer, ForeignKey("rifle_profiles.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    manufacturer = Column(String(255), nullable=False)
    bullet_weight = Column(Float, nullable=False)  # grains
    bullet_type = Column(String(100), nullable=False)
    ballistic_coefficient_g1 = Column(Float, nullable=False)
    ballistic_coefficient_g7 = Column(Float, nullable=False)
    muzzle_velocity = Column(Float, nullable=False)  # fps
    powder_type = Column(String(100))
    powder_weight = Column(Float)  # grains
    lot_number = Column(String(100))
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="ammo_profiles")
    rifle = relationship("RifleProfile", back_populates="ammo_profiles")
    dope_logs = relationship("DOPELog", back_populates="ammo", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_ammo_profiles_user_id", "user_id"),
        Index("ix_ammo_profiles_rifle_id", "rifle_id"),
        Index("ix_ammo_profiles_manufacturer", "manufacturer"),
    )


class EnvironmentSnapshot(Base):
    __tablename__ = "environment_snapshots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    temperature = Column(Float, nullable=False)  # Fahrenheit
    humidity = Column(Float, nullable=False)  # percent
    pressure = Column(Float, nullable=False)  # inHg
    altitude = Column(Float, nullable=False)  # feet
    density_altitude = Column(Float, nullable=False)  # feet
    wind_speed = Column(Float, nullable=False)  # mph
    wind_direction = Column(Float, nullable=False)  # degrees
    latitude = Column(Float)
    longitude = Column(Float)
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow)

    user = relationship("User", back_populates="environment_snapshots")
    dope_logs = relationship("DOPELog", back_populates="environment", passive_deletes="all")

    __table_args__ = (
        Index("ix_environment_snapshots_user_timestamp", "user_id", "timestamp"),
    )


class DOPELog(Base):
    __tablename__ = "dope_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    rifle_id = Column(Integer, ForeignKey("rifle_profiles.id", ondelete="CASCADE"), nullable=False)
    ammo_id = Column(Integer, ForeignKey("ammo_profiles.id", ondelete="CASCADE"), nullable=False)
    environment_id = Column(Integer, ForeignKey("environment_snapshots.id", ondelete="RESTRICT"), nullable=False)
    distance = Column(Float, nullable=False)
    distance_unit = Column(String(6), nullable=False)  # yards | meters
    distance_yards = Column(Float, nullable=False)
    elevation_correction = Column(Float, nullable=False)
    windage_correction = Column(Float, nullable=False)
    correction_unit = Column(String(3), nullable=False)  # MIL | MOA
    target_type = Column(String(20), nullable=False)  # steel | paper | vital_zone | other
    group_size = Column(Float)  # inches
    hit_count = Column(Integer)
    shot_count = Column(Integer)
    hit_percentage = Column(Float)
    notes = Column(Text)
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow)

    user = relationship("User", back_populates="dope_logs")
    rifle = relationship("RifleProfile", back_populates="dope_logs")
    ammo = relationship("AmmoProfile", back_populates="dope_logs")
    environment = relationship("EnvironmentSnapshot", back_populates="dope_logs")

    __table_args__ = (
        Index("ix_dope_logs_user_id", "user_id"),
        Index("ix_dope_logs_timestamp", "timestamp"),
        Index("ix_dope_logs_rifle_distance", "rifle_id", "distance_yards"),
        Index("ix_dope_logs_ammo_id", "ammo_id"),
    )


class RateLimitAuditEvent(Base):
    """One row per request refused by a rate limit."""

    __tablename__ = "rate_limit_audit_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    endpoint = Column(String(100), nullable=False)
    scope_hash = Column(String(24), nullable=False)  # sha256 prefix of the limiter scope
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    ip_address = Column(String(128))
    retry_after_seconds = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_rate_limit_audit_events_created_at", "created_at"),
    )
