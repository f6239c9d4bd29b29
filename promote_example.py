# promote_example.py
import sys

from app.database import create_db_and_tables, new_session
from app.repositories.headshot_repo import HeadshotRepository
from app.services.example_service import ExampleService


def main():
    if len(sys.argv) < 2:
        print("Usage: python promote_example.py <headshot id> [<headshot id> ...]")
        sys.exit(1)

    create_db_and_tables()
    service = ExampleService(HeadshotRepository())

    with new_session() as session:
        for raw in sys.argv[1:]:
            example = service.promote(session, int(raw))
            print(f"Headshot {raw} -> example {example.id} ({example.style})")


if __name__ == "__main__":
    main()
