"""
Queue a scan without going through HTTP. Run from project root:
  python -m codepassport.scripts.enqueue_scan REPOSITORY_URL [--token-env VAR] [--user-id ID]
Example:
  GH_TOKEN=... python -m codepassport.scripts.enqueue_scan https://github.com/acme/api --token-env GH_TOKEN
"""
import argparse
import os
import sys

from dotenv import load_dotenv
from sqlalchemy.exc import SQLAlchemyError

from codepassport.core.config import get_settings
from codepassport.core.database import build_engine, build_session_factory
from codepassport.services.repo_resolver import ResolutionError
from codepassport.services.scan_repository import ScanRepository


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Queue a CodePassport repository audit.")
    parser.add_argument("repository_url", help="HTTP(S) URL of the repository")
    parser.add_argument(
        "--token-env",
        default=None,
        help="Name of an environment variable holding the access token (keeps it out of shell history)",
    )
    parser.add_argument("--user-id", default=None, help="Owning user reference")
    args = parser.parse_args(argv)

    token = None
    if args.token_env:
        token = os.environ.get(args.token_env)
        if not token:
            print(f"Environment variable {args.token_env} is not set.", file=sys.stderr)
            return 1

    load_dotenv()
    settings = get_settings()
    engine = build_engine(settings)
    repository = ScanRepository.from_settings(build_session_factory(engine), settings)
    try:
        job = repository.create(args.repository_url.strip(), token=token, user_id=args.user_id)
    except ResolutionError as e:
        print(f"Invalid repository URL: {e.message}", file=sys.stderr)
        return 1
    except SQLAlchemyError as e:
        print(f"Could not queue scan: {type(e).__name__}", file=sys.stderr)
        return 1
    finally:
        engine.dispose()
    print(f"Queued scan {job.id} ({job.status}).")
    return 0


if __name__ == "__main__":
    sys.exit(main())
