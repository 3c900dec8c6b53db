#!/usr/bin/env python
"""Seed a demo organization, its admin and a handful of items for development."""
from lendbox.core.security import get_password_hash
from lendbox.db.init_db import init_db
from lendbox.db.session import SessionLocal
from lendbox.models.item import Item
from lendbox.models.organization import Organization
from lendbox.models.user import ROLE_ADMIN_ORG, User
from lendbox.services import inventory_service, organization_service

ORGANIZATION_NAME = "Demo Vocational School"
ADMIN_EMAIL = "admin@demo-school.org"
ADMIN_PASSWORD = "DemoAdmin123"

ITEMS = [
    # name, category, stock, condition, loanable, reason
    ("Projector Epson EB-X06", "Electronics", 3, "good", True, None),
    ("Laptop Lenovo ThinkPad", "Electronics", 5, "good", True, None),
    ("HDMI Cable 5m", "Accessories", 10, "fair", True, None),
    ("Portable Speaker", "Audio", 2, "good", True, None),
    ("Digital Camera Canon", "Electronics", 1, "fair", True, None),
    ("Oscilloscope", "Lab Equipment", 2, "good", False, "Lab use only, not for borrowing"),
    ("3D Printer", "Lab Equipment", 1, "poor", False, "Under repair"),
]


def main():
    init_db()
    db = SessionLocal()
    try:
        organization = db.query(Organization).filter(Organization.name == ORGANIZATION_NAME).first()
        if not organization:
            organization = Organization(
                name=ORGANIZATION_NAME,
                slug=organization_service.unique_slug(db, ORGANIZATION_NAME),
                description="Demo organization for local development",
                email="office@demo-school.org",
            )
            db.add(organization)
            db.commit()
            db.refresh(organization)
            print(f"Created organization: {organization.name} (/{organization.slug})")

        if not db.query(User).filter(User.email == ADMIN_EMAIL).first():
            db.add(User(
                name="Demo Admin",
                email=ADMIN_EMAIL,
                hashed_password=get_password_hash(ADMIN_PASSWORD),
                role=ROLE_ADMIN_ORG,
                organization_id=organization.id,
            ))
            db.commit()
            print(f"\n{'=' * 60}")
            print("ORGANIZATION ADMIN CREATED")
            print(f"Email:    {ADMIN_EMAIL}")
            print(f"Password: {ADMIN_PASSWORD}")
            print(f"{'=' * 60}\n")

        added = 0
        for name, category, stock, condition, loanable, reason in ITEMS:
            exists = db.query(Item.id).filter(Item.organization_id == organization.id, Item.name == name).first()
            if exists:
                continue
            db.add(Item(
                organization_id=organization.id,
                name=name,
                code=inventory_service.generate_item_code(db),
                category=category,
                stock=stock,
                available_stock=stock,
                condition=condition,
                is_loanable=loanable,
                not_loanable_reason=reason,
            ))
            db.commit()
            added += 1
        print(f"Seeded {added} item(s) for {organization.name}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
