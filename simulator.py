"""Interactive CLI simulator — exercise the OTP and login-link flows locally.

Uses the in-memory token store, the local SQLite directory and log-only
notifiers, so no Redis, SMS gateway or SMTP server is needed.  Run
``python seed.py`` first to have some known customers.
"""

import asyncio
import re

from otp_auth.api.dependencies import assemble
from otp_auth.config import Settings
from otp_auth.database.engine import async_session_factory, init_db
from otp_auth.directory.database import DatabaseDirectory
from otp_auth.errors import OTPAuthError
from otp_auth.notifiers.email import LogEmailNotifier
from otp_auth.notifiers.sms import LogSmsNotifier
from otp_auth.storage.memory_store import InMemoryTokenStore

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
BOLD = "\033[1m"
RESET = "\033[0m"

HELP = f"""{DIM}Commands:
  send                 issue an OTP for the current phone
  verify <code>        verify a code
  resend               request a new code
  status               show the live code's remaining time
  link <email>         request a login link
  redeem <token>       redeem a login-link token
  signup <email> <name...>  register the current phone
  switch               change phone number
  quit{RESET}
"""


async def main() -> None:
    print(f"\n{BOLD}{'=' * 52}")
    print("  🔐  OTP Auth — Flow Simulator")
    print(f"{'=' * 52}{RESET}\n")

    await init_db()

    settings = Settings(
        environment="development",
        token_store_backend="memory",
        rate_limit_enabled=False,
        expose_otp_in_response=True,
    )
    sms = LogSmsNotifier()
    email = LogEmailNotifier()
    services = assemble(
        settings,
        InMemoryTokenStore(),
        DatabaseDirectory(async_session_factory),
        sms,
        email,
    )

    print(f"{DIM}Tip: try 01712345678 (seeded) or any other 01XXXXXXXXX number{RESET}")
    print(HELP)
    phone = input(f"{YELLOW}Phone number to simulate: {RESET}").strip() or "01712345678"

    while True:
        try:
            line = input(f"{BLUE}{BOLD}[{phone}]>{RESET} ").strip()
        except (KeyboardInterrupt, EOFError):
            print(f"\n{DIM}Goodbye!{RESET}")
            break
        if not line:
            continue

        command, _, arg = line.partition(" ")
        command = command.lower()
        try:
            if command == "quit":
                print(f"{DIM}Goodbye!{RESET}")
                break
            elif command == "switch":
                phone = input(f"{YELLOW}New phone number: {RESET}").strip()
            elif command in ("send", "resend"):
                op = services.otp.issue if command == "send" else services.otp.resend
                result = await op(phone)
                print(
                    f"{GREEN}Sent to {result.phone}{RESET} "
                    f"(existing customer: {result.customer_exists}, "
                    f"expires in {result.expires_in}s)"
                )
                print(f"{DIM}SMS: {sms.sent[-1][1]}{RESET}")
            elif command == "verify":
                result = await services.otp.verify(phone, arg)
                print(f"{GREEN}✅ Verified {result.phone}{RESET}")
                if result.customer:
                    print(f"{DIM}Customer snapshot: {result.customer}{RESET}")
            elif command == "status":
                status = await services.otp.status(phone)
                print(
                    f"active={status.active} remaining={status.remaining_seconds}s "
                    f"resend_in={status.resend_available_in}s"
                )
            elif command == "link":
                result = await services.login_links.request(arg)
                print(f"{GREEN}Login link e-mailed to {result.email}{RESET}")
                print(f"{DIM}{result.login_url}{RESET}")
            elif command == "redeem":
                token = re.sub(r"^.*token=", "", arg)
                result = await services.login_links.verify(token)
                print(f"{GREEN}✅ Logged in as {result.email}{RESET}")
            elif command == "signup":
                address, _, name = arg.partition(" ")
                result = await services.customers.signup(phone, name, address)
                print(f"{GREEN}Created customer {result.customer.customer_id}{RESET}")
            else:
                print(HELP)
        except OTPAuthError as exc:
            print(f"{RED}✖ {exc.code}: {exc.message}{RESET}")
        print()

    await services.store.close()


if __name__ == "__main__":
    asyncio.run(main())
