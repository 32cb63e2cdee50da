import os
import uuid

from portal.core.security import get_password_hash
from portal.db import models
from portal.db.session import SessionLocal


def main() -> None:
    login = os.getenv("STAFF_BOOTSTRAP_LOGIN")
    password = os.getenv("STAFF_BOOTSTRAP_PASSWORD")
    if not login or not password:
        raise SystemExit("STAFF_BOOTSTRAP_LOGIN e STAFF_BOOTSTRAP_PASSWORD nao definidos.")
    login = login.strip().lower()

    db = SessionLocal()
    try:
        user = db.query(models.User).filter(models.User.login == login).first()
        if not user:
            user = models.User(
                id=str(uuid.uuid4()),
                login=login,
                name=os.getenv("STAFF_BOOTSTRAP_NAME", login),
                email=os.getenv("STAFF_BOOTSTRAP_EMAIL"),
            )
            db.add(user)
        user.role = models.ROLE_STAFF
        user.status = "active"
        user.password_hash = get_password_hash(password)
        db.commit()
        print(f"Staff ACTIVE: {user.login}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
