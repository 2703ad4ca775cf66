"""
Command line client for the hub.

    sarifhub [options] HUB projects [SEARCH]
    sarifhub [options] HUB analyses PROJECT_ID
    sarifhub [options] HUB sarif ANALYSIS_ID [--base BASE_ID] [-o FILE]
    sarifhub [options] HUB fetch RESOURCE

Options default to the SARIFHUB_* environment variables.
"""

import argparse
import asyncio
import getpass
import signal
import sys
from collections.abc import Sequence

from .client import HubClient, HubRequestOptions, SarifSearchOptions
from .config import DEFAULT_TIMEOUT_SECONDS, HubClientSettings, SecretProvider
from .core.cancellation import CancellationToken
from .core.exceptions import (
    ConfigurationError,
    OperationCancelledError,
    SarifHubError,
    TransportError,
)
from .core.logging_config import configure_hub_logging
from .download import download_sarif
from .transport import HubResponse

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sarifhub",
        description="Fetch projects, analyses, and SARIF results from an analysis hub.",
    )
    parser.add_argument("hub", help="Hub address: [http[s]://]host[:port]")
    parser.add_argument("--cacert", help="CA certificate file used to verify the hub")
    parser.add_argument(
        "--auth",
        help="Authentication mode: anonymous, password, or certificate (default: inferred)",
    )
    parser.add_argument("--hubuser", help="Hub user name")
    parser.add_argument("--hubpwfile", help="File containing the hub user password")
    parser.add_argument("--hubcert", help="Client certificate file")
    parser.add_argument("--hubkey", help="Client certificate key file (default: HUBCERT with .key suffix)")
    parser.add_argument("--timeout", type=float, help=f"Socket timeout in seconds (default: {DEFAULT_TIMEOUT_SECONDS:g})")
    parser.add_argument("--limit", type=int, help="Maximum number of projects or analyses to list")
    parser.add_argument("--log-level", choices=LOG_LEVELS, help="Log level (default: WARNING)")

    commands = parser.add_subparsers(dest="command", required=True)

    fetch = commands.add_parser("fetch", help="Fetch a raw hub resource to stdout")
    fetch.add_argument("resource", help="Resource path, e.g. /project_search.json")

    projects = commands.add_parser("projects", help="List projects")
    projects.add_argument("search", nargs="?", help="Project name, or tree path if it contains '/'")

    analyses = commands.add_parser("analyses", help="List analyses of a project, newest first")
    analyses.add_argument("project_id")

    sarif = commands.add_parser("sarif", help="Download SARIF results of an analysis")
    sarif.add_argument("analysis_id")
    sarif.add_argument("--base", dest="base_analysis_id", help="Only warnings not present in this base analysis")
    sarif.add_argument("-o", "--output", help="Destination file (default: stdout)")
    return parser


def settings_from_args(args: argparse.Namespace) -> HubClientSettings:
    settings = HubClientSettings.from_env()
    overrides = {
        "address": args.hub,
        "cacert": args.cacert,
        "auth": args.auth,
        "hubuser": args.hubuser,
        "hubpwfile": args.hubpwfile,
        "hubcert": args.hubcert,
        "hubkey": args.hubkey,
        "timeout": args.timeout,
        "log_level": args.log_level,
    }
    return settings.model_copy(update={k: v for k, v in overrides.items() if v is not None})


def prompt_secret(prompt: str) -> SecretProvider:
    async def provider() -> str:
        try:
            return await asyncio.to_thread(getpass.getpass, prompt)
        except (EOFError, KeyboardInterrupt):
            raise OperationCancelledError("Credential prompt was cancelled.") from None

    return provider


async def copy_to_stdout(response: HubResponse) -> None:
    async for chunk in response.aiter_bytes():
        sys.stdout.buffer.write(chunk)
    sys.stdout.buffer.flush()


async def run_command(args: argparse.Namespace, client: HubClient, cancellation: CancellationToken) -> int:
    options = HubRequestOptions(cancellation=cancellation)
    rejection = await client.sign_in(options)
    if rejection is not None:
        print(f"Sign-in failed: {rejection}", file=sys.stderr)
        return EXIT_FAILURE

    if args.command == "projects":
        for project in await client.fetch_project_info(args.search, options, args.limit):
            print(f"{project.id}\t{project.name}\t{project.path}")
    elif args.command == "analyses":
        for analysis in await client.fetch_analysis_info(args.project_id, options, args.limit):
            print(f"{analysis.id}\t{analysis.name}")
    elif args.command == "fetch":
        await copy_to_stdout(await client.fetch(args.resource, options))
    elif args.command == "sarif":
        sarif_options = SarifSearchOptions(cancellation=cancellation)
        if args.output:
            size = await download_sarif(
                client, args.output, args.analysis_id, args.base_analysis_id, sarif_options
            )
            print(f"Wrote {size} bytes to {args.output}", file=sys.stderr)
        else:
            if args.base_analysis_id is None:
                response = await client.fetch_sarif_analysis_stream(args.analysis_id, sarif_options)
            else:
                response = await client.fetch_sarif_analysis_difference_stream(
                    args.analysis_id, args.base_analysis_id, sarif_options
                )
            await copy_to_stdout(response)
    return EXIT_OK


async def run(args: argparse.Namespace, settings: HubClientSettings) -> int:
    cancellation = CancellationToken()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancellation.cancel)
    except (NotImplementedError, RuntimeError):
        # Not available on this platform; Ctrl-C interrupts instead.
        pass

    user = settings.hubuser or ""
    client = await settings.create_client(
        password_provider=prompt_secret(f"Password for {user}@{settings.address}: "),
        passphrase_provider=prompt_secret("Client certificate key passphrase: "),
    )
    try:
        return await run_command(args, client, cancellation)
    finally:
        await client.aclose()
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line client and return the exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = settings_from_args(args)
        configure_hub_logging(log_file=settings.log_file, log_level=settings.log_level)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_USAGE

    try:
        return asyncio.run(run(args, settings))
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_USAGE
    except OperationCancelledError:
        print("Cancelled.", file=sys.stderr)
        return EXIT_FAILURE
    except TransportError as e:
        print(f"Could not connect to hub: {e}", file=sys.stderr)
        if e.is_certificate_untrusted:
            print(
                "The hub certificate is not trusted. Use --cacert to specify the CA certificate.",
                file=sys.stderr,
            )
        return EXIT_FAILURE
    except SarifHubError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except KeyboardInterrupt:
        print("\nCancelled.", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
