"""Command-line entry point for the docdraft assistant.

Subcommands:
    serve           run the Streamlit UI (the default)
    rebuild-index   re-embed the knowledge base corpus and swap the index in
    templates       list the registered document templates
"""

from __future__ import annotations

import argparse
import subprocess
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from docdraft.config import config

if TYPE_CHECKING:
    from collections.abc import Sequence

PROJECT_ROOT = Path(__file__).resolve().parent
DEFAULT_APP = PROJECT_ROOT / "app.py"

logger = config.get_logger(__name__)


def serve(args: argparse.Namespace) -> int:
    """Run app.py under ``streamlit run`` until it exits."""  # noqa: DOC201
    script = args.app if args.app.is_absolute() else PROJECT_ROOT / args.app
    if not script.exists():
        logger.error("Streamlit script not found: %s", script)
        return 1

    command = [
        sys.executable,
        "-m",
        "streamlit",
        "run",
        str(script.resolve()),
        f"--server.port={args.port}",
        f"--server.address={args.address}",
        f"--server.headless={str(args.headless).lower()}",
    ]
    logger.info("Serving docdraft on http://%s:%s", args.address, args.port)
    try:
        completed = subprocess.run(command, check=False, cwd=PROJECT_ROOT)
    except KeyboardInterrupt:
        logger.info("docdraft stopped by user")
        return 0
    except OSError:
        logger.exception("Unable to launch Streamlit")
        return 1

    if completed.returncode:
        logger.error("Streamlit exited with status %s", completed.returncode)
    return completed.returncode


def rebuild_index(args: argparse.Namespace) -> int:  # noqa: ARG001
    """Re-embed the corpus; the previous index stays live if this fails."""  # noqa: DOC201
    from docdraft.embeddings import EmbeddingService  # noqa: PLC0415
    from docdraft.errors import IndexBuildFailure  # noqa: PLC0415
    from docdraft.knowledge_index import KnowledgeIndex  # noqa: PLC0415

    index = KnowledgeIndex(EmbeddingService())
    try:
        chunk_count = index.rebuild()
    except IndexBuildFailure:
        logger.exception("Knowledge index rebuild failed")
        return 1
    print(f"{chunk_count} chunks indexed into {index.index_dir}")  # noqa: T201
    return 0


def list_templates(args: argparse.Namespace) -> int:
    """Print the id, language and name of every registered template."""  # noqa: DOC201
    from docdraft.templates import TemplateCatalog  # noqa: PLC0415

    catalog = TemplateCatalog.from_file(args.registry)
    if not catalog:
        logger.warning("No templates registered in %s", args.registry)
        return 1
    for info in catalog.list_templates():
        print(f"{info.language}\t{info.id}\t{info.human_name}")  # noqa: T201
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Parser with one subcommand per operation; ``serve`` when none is given."""  # noqa: DOC201
    parser = argparse.ArgumentParser(
        prog="docdraft", description=__doc__.split("\n")[0]
    )
    commands = parser.add_subparsers(dest="command")

    serve_parser = commands.add_parser("serve", help="Run the Streamlit UI.")
    serve_parser.add_argument("--app", type=Path, default=DEFAULT_APP)
    serve_parser.add_argument("--port", type=int, default=8501)
    serve_parser.add_argument("--address", default="localhost")
    serve_parser.add_argument(
        "--show",
        dest="headless",
        action="store_false",
        help="Open a browser window instead of running headless.",
    )
    serve_parser.set_defaults(handler=serve, needs_api_key=True)

    rebuild_parser = commands.add_parser(
        "rebuild-index", help="Rebuild the knowledge base index."
    )
    rebuild_parser.set_defaults(handler=rebuild_index, needs_api_key=True)

    templates_parser = commands.add_parser(
        "templates", help="List registered document templates."
    )
    templates_parser.add_argument(
        "--registry", type=Path, default=config.TEMPLATES_REGISTRY_PATH
    )
    templates_parser.set_defaults(handler=list_templates, needs_api_key=False)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Dispatch to the chosen subcommand."""  # noqa: DOC201
    parser = build_parser()
    argv = list(sys.argv[1:] if argv is None else argv)
    args = parser.parse_args(argv or ["serve"])

    config.setup_logging()
    if args.needs_api_key:
        try:
            config.validate()
        except ValueError:
            logger.exception("Configuration invalid")
            return 1
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
