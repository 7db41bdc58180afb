"""
Database initialization script.

    python -m app.db.init_db

Creates the tables, then seeds the default categories and one account per role.
"""
from sqlalchemy.orm import Session
from app.db.session import SessionLocal, init_db
from app.models.user import User, UserRole
from app.core.security import get_password_hash
from app.services.category_service import seed_default_categories

DEFAULT_USERS = [
    ("Admin User", "admin@financetracker.com", "admin123", UserRole.ADMIN),
    ("Regular User", "user@financetracker.com", "user123", UserRole.USER),
    ("Read Only User", "readonly@financetracker.com", "readonly123", UserRole.READ_ONLY),
]


def seed_default_users(db: Session) -> int:
    """Create any missing default accounts; returns how many were added."""
    added = 0
    for name, email, password, role in DEFAULT_USERS:
        if db.query(User.id).filter(User.email == email).first():
            continue
        db.add(User(name=name, email=email, hashed_password=get_password_hash(password), role=role))
        added += 1
    db.commit()
    return added


def seed(db: Session) -> None:
    categories = seed_default_categories(db)
    users = seed_default_users(db)
    print(f"Seeded {categories} categories and {users} users")


if __name__ == "__main__":
    print("Initializing database...")
    init_db()
    session = SessionLocal()
    try:
        seed(session)
    finally:
        session.close()
    print("Database initialized successfully!")
