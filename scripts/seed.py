#!/usr/bin/env python3
"""
Minimal seed:
- Ensures a super-admin user exists (all three capabilities).
- Optionally creates one starter area code and makes it the admin's home area.
- Safe to run multiple times (idempotent).
"""
import os

from sqlalchemy.orm import Session

from civicwatch.core.rbac import Capability
from civicwatch.core.security import get_password_hash
from civicwatch.db.session import SessionLocal, engine
from civicwatch.models import Base
from civicwatch.models.area_code import AreaCode
from civicwatch.models.user import User
from civicwatch.services.area_registry import draw_code


def ensure_superadmin(db: Session, email: str, password: str) -> User:
    email = email.strip().lower()
    user = db.query(User).filter(User.email == email).first()
    if user:
        # upgrade to super admin if needed
        if Capability.SUPER_ADMIN not in user.capability_set:
            user.set_capabilities(user.capability_set | {Capability.ADMIN, Capability.SUPER_ADMIN})
            db.commit()
            db.refresh(user)
        return user

    u = User(email=email, name="Super Admin", hashed_password=get_password_hash(password))
    u.set_capabilities({Capability.ADMIN, Capability.SUPER_ADMIN})
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


def ensure_area(db: Session, name: str, owner: User) -> AreaCode:
    area = db.query(AreaCode).filter(AreaCode.name == name).first()
    if area:
        return area
    area = AreaCode(code=draw_code(), name=name, description="Seeded area", created_by=owner.id)
    db.add(area)
    db.commit()
    db.refresh(area)
    if not owner.area_code:
        owner.area_code = area.code
        db.commit()
    return area


def main():
    email = os.environ.get("SEED_SUPERADMIN_EMAIL", "admin@example.com")
    password = os.environ.get("SEED_SUPERADMIN_PASSWORD", "ChangeMe123!")
    area_name = os.environ.get("SEED_AREA_NAME", "")

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        u = ensure_superadmin(db, email, password)
        print(f"OK: SuperAdmin ensured -> {u.email} (id={u.id})")
        if area_name:
            area = ensure_area(db, area_name, u)
            print(f"OK: Area ensured -> {area.name} ({area.code})")
    finally:
        db.close()


if __name__ == "__main__":
    main()
