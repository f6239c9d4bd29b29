# send_test_email.py
import sys

from app.core.email_client import mailer


def main():
    if len(sys.argv) != 2:
        print("Usage: python send_test_email.py <recipient email>")
        sys.exit(1)

    print("Sending test completion email...")

    sent = mailer().send_model_completion_email(to_email=sys.argv[1], model_id=0)

    if sent:
        print("Email sent! Check your inbox.")
    else:
        print("Email not sent; check the SMTP_* settings and the server log.")
        sys.exit(1)


if __name__ == "__main__":
    main()
