import logging

from portal.db.session import SessionLocal
from portal.requests.service import retry_pending_documents


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    db = SessionLocal()
    try:
        emitted = retry_pending_documents(db)
        print(f"Documentos emitidos: {emitted}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
