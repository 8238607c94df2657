"""
Setup verification script for the document answering service.

Run from the project root:  python verify_setup.py
Checks installed packages, .env, the approved-owner list, the Google
service account and the LLM API.  Exits with status 1 if any check fails.
"""
import asyncio
import importlib.util
import os
import sys
from typing import Awaitable, Callable, List, Tuple

GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
BLUE = "\033[94m"
RESET = "\033[0m"

REQUIRED_MODULES = ["fastapi", "uvicorn", "httpx", "pydantic_settings", "google.auth", "requests"]


def report(message: str, ok: bool) -> bool:
    mark = f"{GREEN}✓{RESET}" if ok else f"{RED}✗{RESET}"
    print(f"{mark} {message}")
    return ok


def hint(message: str) -> None:
    print(f"  {YELLOW}{message}{RESET}")


async def check_python_version() -> bool:
    major, minor, micro = sys.version_info[:3]
    return report(f"Python {major}.{minor}.{micro} (3.11+ required)", (major, minor) >= (3, 11))


async def check_dependencies() -> bool:
    missing = []
    for module in REQUIRED_MODULES:
        try:
            found = importlib.util.find_spec(module) is not None
        except ModuleNotFoundError:
            found = False
        if not found:
            missing.append(module)
    if missing:
        hint("pip install -e '.[test]'")
    return report(f"Packages: {', '.join(missing) or 'all'} {'missing' if missing else 'installed'}", not missing)


async def check_env_file() -> bool:
    ok = report(".env file present", os.path.exists(".env"))
    if not ok:
        hint("cp .env.example .env")
    return ok


async def check_approved_emails() -> bool:
    from app.config import settings

    approved = settings.get_approved_emails()
    ok = report(f"{len(approved)} approved document owner(s)", bool(approved))
    if not ok:
        hint("Set APPROVED_EMAILS; every document is rejected otherwise")
    return ok


async def check_google() -> bool:
    from app.services.google_docs import ServiceAccountTokenProvider

    try:
        token = await ServiceAccountTokenProvider()()
    except Exception as e:
        hint("Check CLIENT_EMAIL and PRIVATE_KEY in .env")
        return report(f"Google service account: {e}", False)
    return report("Google access token obtained", bool(token))


async def check_llm() -> bool:
    from app.config import settings
    from app.services.llm_service import OpenAIChatService

    if not settings.OPENAI_API_KEY:
        return report("OPENAI_API_KEY set", False)
    reachable = await OpenAIChatService().check_health()
    return report(f"LLM API at {settings.OPENAI_BASE_URL}", reachable)


CHECKS: List[Tuple[str, Callable[[], Awaitable[bool]]]] = [
    ("Python", check_python_version),
    ("Packages", check_dependencies),
    ("Environment file", check_env_file),
    ("Approved owners", check_approved_emails),
    ("Google service account", check_google),
    ("LLM API", check_llm),
]


async def main() -> int:
    print(f"\n{BLUE}Document Answerer - setup verification{RESET}")
    print(f"{BLUE}{'=' * 60}{RESET}")

    passed = 0
    for name, check in CHECKS:
        print(f"\n{BLUE}{name}{RESET}")
        try:
            passed += bool(await check())
        except Exception as e:
            report(f"check crashed: {e}", False)

    print(f"\n{BLUE}{'=' * 60}{RESET}")
    if passed == len(CHECKS):
        print(f"{GREEN}✓ {passed}/{len(CHECKS)} checks passed{RESET}")
        print("  uvicorn app.main:app --reload --port 3000")
        return 0
    print(f"{RED}✗ {passed}/{len(CHECKS)} checks passed{RESET}")
    return 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
