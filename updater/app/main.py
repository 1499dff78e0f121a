import argparse
import asyncio
import sys
from typing import Sequence

from loguru import logger

from updater.app.composition import UpdaterDependencies, create_updater_dependencies
from updater.app.config.settings import Settings
from updater.app.constants import RUN_STATUS
from updater.app.domain.errors import AggregateFetchError, MetadataUpdateError
from updater.app.domain.models import RunResult

LOG_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "{message} <dim>{extra}</dim>"
)


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="metadata-updater",
        description="Refresh package versions and checksums in the registry metadata file",
    )
    parser.add_argument(
        "package",
        nargs="?",
        help="Package section to refresh (default: all packages)",
    )
    parser.add_argument(
        "--metadata",
        dest="metadata",
        help="Path to metadata.toml (default: $METADATA_PATH or ./metadata.toml)",
    )
    return parser


async def run_update(deps: UpdaterDependencies, package: str | None) -> RunResult:
    await deps.connect()
    try:
        return await deps.update_service.run(package)
    finally:
        await deps.close()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    settings = Settings()
    if args.metadata:
        settings = settings.model_copy(update={"metadata_path": args.metadata})
    configure_logging(settings.log_level)

    deps = create_updater_dependencies(settings)
    try:
        result = asyncio.run(run_update(deps, args.package))
    except AggregateFetchError as e:
        for error in e.failures.values():
            logger.error("{}", error)
        logger.error("{}; metadata not written", e)
        return 1
    except MetadataUpdateError as e:
        logger.error("{}", e)
        return 1
    except KeyboardInterrupt:
        logger.warning("interrupted")
        return 130
    except Exception as e:
        logger.exception("update failed: {}", e)
        return 1

    if result.status == RUN_STATUS.UPDATED:
        print(f"updated metadata: {settings.metadata_path} ({', '.join(result.changed)})")
    else:
        print("metadata already up to date")
    return 0


if __name__ == "__main__":
    sys.exit(main())
