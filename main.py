"""
Keychain OTP
Entry point for the application.
"""
import logging
import os

from secure_store import SERVICE_NAME, SecureStore
from ui_main import MainApplication


def main():
    logging.basicConfig(
        level=os.environ.get("KEYCHAIN_OTP_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    store = SecureStore(service_name=os.environ.get("KEYCHAIN_OTP_SERVICE", SERVICE_NAME))
    app = MainApplication(store)
    app.mainloop()


if __name__ == "__main__":
    main()
