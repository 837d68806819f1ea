"""
Command line entry point for the conversational agent.

Usage:
    tenant-agent health              # exit 0 when every component passes
    tenant-agent chat --tenant t1    # interactive loop
    tenant-agent serve --port 8000   # HTTP API
"""
import argparse
import logging
import sys
from typing import Callable, List, Optional, TextIO

from config import LOG_LEVEL, LOG_FORMAT, PORT, REQUEST_TIMEOUT, TENANT_ID
from factory import Services, build_services
from logger import setup_logging
from models.errors import InvalidTenant
from models.tenant import TenantContext
from services.agent_loop import AgentResult, Outcome
from services.deadline import Deadline

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNHEALTHY = 1
EXIT_USAGE = 2

QUIT_COMMANDS = {"exit", "quit"}

ERROR_MESSAGES = {
    "history_unavailable": "Conversation history is unavailable right now. Please try again.",
    "model_unavailable": "The model is unavailable right now. Please try again shortly.",
    "model_rejected": "The model rejected this request.",
}


def run_health(services: Services, out: Optional[TextIO] = None) -> int:
    """Print per-component health and return the process exit code."""
    report = services.health_monitor.check_health()
    for component, status in sorted(report.components.items()):
        print(f"{component}: {status}", file=out)
    print(f"overall: {report.status}", file=out)
    return EXIT_OK if report.healthy else EXIT_UNHEALTHY


def format_result(result: AgentResult) -> str:
    """Render an agent result for the terminal without internal details."""
    if result.outcome is Outcome.REFUSED:
        return f"[refused] {result.text}"
    if result.text is not None:
        lines = [result.text]
        if "history_not_persisted" in result.warnings:
            lines.append("[warning] this reply was not saved to the conversation history")
        if "response_truncated" in result.warnings:
            lines.append("[warning] the reply was cut short")
        return "\n".join(lines)
    message = ERROR_MESSAGES.get(result.error_kind, "The request failed.")
    return f"[error] {message}"


def run_chat(
    services: Services,
    tenant: TenantContext,
    read: Callable[[str], str] = input,
    out: Optional[TextIO] = None,
    timeout: float = REQUEST_TIMEOUT
) -> int:
    """Read messages until EOF or a quit command, printing each reply."""
    print(f"Chatting as tenant {tenant}. Type 'exit' to quit.", file=out)
    while True:
        try:
            message = read("you> ")
        except (EOFError, KeyboardInterrupt):
            print(file=out)
            return EXIT_OK

        message = message.strip()
        if not message:
            continue
        if message.lower() in QUIT_COMMANDS:
            return EXIT_OK

        result = services.agent.handle(tenant, message, deadline=Deadline(timeout))
        print(f"agent> {format_result(result)}", file=out)


def run_serve(port: int) -> int:
    import uvicorn
    logger.info(f"Starting Tenant Agent API on port {port}")
    uvicorn.run("main:app", host="0.0.0.0", port=port)
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tenant-agent",
        description="Multi-tenant conversational agent"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("health", help="Check store and model health")

    chat = subparsers.add_parser("chat", help="Interactive conversation")
    chat.add_argument(
        "--tenant",
        default=TENANT_ID,
        help="Tenant identifier (default: TENANT_ID environment variable)"
    )

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--port", type=int, default=PORT, help="Port to listen on")
    return parser


def main(
    argv: Optional[List[str]] = None,
    services_factory: Callable[[], Services] = build_services
) -> int:
    """Main entry point; returns the process exit code."""
    args = build_parser().parse_args(argv)
    setup_logging(LOG_LEVEL, LOG_FORMAT)

    if args.command == "serve":
        return run_serve(args.port)

    tenant = None
    if args.command == "chat":
        try:
            tenant = TenantContext.parse(args.tenant)
        except InvalidTenant as e:
            print(f"Invalid tenant: {e}", file=sys.stderr)
            return EXIT_USAGE

    try:
        services = services_factory()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_USAGE if args.command == "chat" else EXIT_UNHEALTHY

    try:
        if args.command == "health":
            return run_health(services)
        return run_chat(services, tenant)
    finally:
        services.close()


if __name__ == "__main__":
    sys.exit(main())
