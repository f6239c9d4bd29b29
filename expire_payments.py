# expire_payments.py
from app.core.config import get_settings
from app.dependencies import get_payment_service, get_payment_client, get_price_table
from app.database import new_session


def main():
    """Flip checkout sessions left pending past PAYMENT_PENDING_HOURS to expired."""
    settings = get_settings()
    service = get_payment_service(get_payment_client(), get_price_table(), settings)

    with new_session() as session:
        count = service.expire_stale(session)

    print(f"Expired {count} pending payments older than {settings.PAYMENT_PENDING_HOURS}h.")


if __name__ == "__main__":
    main()
