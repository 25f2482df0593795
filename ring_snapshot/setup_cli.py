"""Interactive onboarding: log in to Ring, pick a camera, write the .env file.

Usage:
  ring-snapshot-setup setup [--env-file .env]
  ring-snapshot-setup list-cameras
"""

import argparse
import asyncio
import getpass
import os
import re
import sys
from typing import Callable, List, Optional

from .camera import BaseCamera, RingCameraClient
from .config import Config
from .errors import RingProxyError
from .tokens import TokenStore, resolve_refresh_token


def set_env_var(contents: str, key: str, value: str) -> str:
    """Replace `KEY=...` in `contents`, or append it on a new line."""
    line = f"{key}={value}"
    pattern = re.compile(rf"^{re.escape(key)}=.*$", re.MULTILINE)
    if pattern.search(contents):
        return pattern.sub(lambda _m: line, contents, count=1)
    if contents and not contents.endswith("\n"):
        contents += "\n"
    return contents + line + "\n"


def _update_env_file(path: str, key: str, value: str) -> None:
    with open(path, "r", encoding="utf-8") as f:
        contents = f.read()
    with open(path, "w", encoding="utf-8") as f:
        f.write(set_env_var(contents, key, value))


def choose_camera(cameras: List[BaseCamera], prompt: Callable[[str], str] = input) -> BaseCamera:
    """Print the cameras and ask until a valid 1-based number is entered."""
    print("\nCameras found:")
    for i, cam in enumerate(cameras, start=1):
        print(f"  [{i}] id={cam.id}  {cam.name}  ({cam.model})")
    while True:
        ans = prompt("\nChoose a camera number: ").strip()
        if ans.isdigit() and 1 <= int(ans) <= len(cameras):
            return cameras[int(ans) - 1]
        print("Invalid choice. Try again.")


async def _fetch_refresh_token(username: str, password: str, otp_provider: Callable[[], str]) -> str:
    """Run the ring_doorbell login flow, asking for a 2FA code when required."""
    from ring_doorbell import Auth, Requires2FAError

    auth = Auth(Config.USER_AGENT)
    try:
        try:
            token = await auth.async_fetch_token(username, password)
        except Requires2FAError:
            token = await auth.async_fetch_token(username, password, otp_provider())
    finally:
        await auth.async_close()
    return token["refresh_token"]


def _list_cameras(refresh_token: str, on_rotated: Callable[[str], None]) -> List[BaseCamera]:
    client = RingCameraClient(refresh_token, on_credential_rotated=on_rotated)
    try:
        return client.list_cameras()
    finally:
        client.close()


def cmd_setup(args: argparse.Namespace) -> int:
    """Log in, store RING_REFRESH_TOKEN, pick a camera, store RING_CAMERA_ID."""
    env_path = args.env_file
    # Never create a fresh .env by accident
    if not os.path.isfile(env_path):
        print(f"Missing {env_path} file.", file=sys.stderr)
        print("Create it with: cp .env.example .env", file=sys.stderr)
        return 1

    print("Step 1/3: Logging in to Ring (enter email/password/2FA when prompted)...")
    username = input("Ring email: ").strip()
    password = getpass.getpass("Ring password: ")
    refresh_token = asyncio.run(
        _fetch_refresh_token(username, password, lambda: input("2FA code: ").strip())
    )
    _update_env_file(env_path, "RING_REFRESH_TOKEN", refresh_token)
    print(f"\nSaved RING_REFRESH_TOKEN to {env_path}")

    print("\nStep 2/3: Fetching cameras from Ring...")
    latest = {"token": refresh_token}
    cams = _list_cameras(refresh_token, lambda t: latest.__setitem__("token", t))
    if latest["token"] != refresh_token:
        # Listing exchanged the token; keep the newest one
        _update_env_file(env_path, "RING_REFRESH_TOKEN", latest["token"])
    if not cams:
        print("No cameras found on this Ring account.", file=sys.stderr)
        return 1

    print("\nStep 3/3: Select camera to use...")
    chosen = choose_camera(cams)
    _update_env_file(env_path, "RING_CAMERA_ID", str(chosen.id))
    print(f"\nSaved RING_CAMERA_ID={chosen.id} to {env_path}")

    print("\nDone.")
    print("\nNext steps:")
    print("  1) Run the service (persist refresh tokens in ./data):")
    print("     mkdir -p data")
    print("     RING_STATE_PATH=./data/ring-state.json ring-snapshot-proxy  # reads ./.env")
    print("\n  2) Health check:")
    print(f"     curl http://localhost:{Config.PORT}/health")
    return 0


def cmd_list_cameras(args: argparse.Namespace) -> int:
    """Print id, name and model of every camera on the account."""
    store = TokenStore(Config.STATE_PATH)
    refresh_token = resolve_refresh_token(store, Config.REFRESH_TOKEN)
    if not refresh_token:
        print("Missing RING_REFRESH_TOKEN.", file=sys.stderr)
        return 1
    for cam in _list_cameras(refresh_token, store.on_credential_rotated):
        print(f"id={cam.id}  name={cam.name}  model={cam.model}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ring-snapshot-setup", description="Ring snapshot proxy onboarding")
    sub = parser.add_subparsers(dest="command", required=True)
    p_setup = sub.add_parser("setup", help="log in and choose a camera")
    p_setup.add_argument("--env-file", default=".env", help="env file to update (must exist)")
    p_setup.set_defaults(func=cmd_setup)
    p_list = sub.add_parser("list-cameras", help="list cameras on the account")
    p_list.set_defaults(func=cmd_list_cameras)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except RingProxyError as e:
        print(f"\nSETUP ERROR: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"\nSETUP ERROR: {type(e).__name__}: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
