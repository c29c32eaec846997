"""
Command line entry points.

    snapshot MANIFEST              capture frames until the lock file is removed
    snapshot-assemble MANIFEST     stitch captured frames into a video
    snapshot-api MANIFEST          serve run status over HTTP
"""
import argparse
import logging
import sys

from snapshot.orchestrator import errors
from snapshot.orchestrator.errors import AssemblyFailure, ConfigInvalid
from snapshot.resources.resource_folder import require_folder
from snapshot.services import config
from snapshot.services.logging_setup import configure_logging
from snapshot.services.status_store import StatusStore

logger = logging.getLogger("snapshot")


def _parser(prog: str, description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=prog, description=description, usage=f"{prog} [SETTINGS]")
    parser.add_argument("manifest", nargs="?", default=config.default_manifest_path(),
                        help="TOML manifest (default: $SNAPSHOT_MANIFEST or snapshot.toml)")
    return parser


def main(argv=None) -> int:
    args = _parser("snapshot", "Capture timelapse frames until the lock file is removed.").parse_args(argv)

    try:
        settings = config.load_settings(args.manifest)
        require_folder(settings.output_folder)
        require_folder(settings.log_folder)
    except ConfigInvalid as e:
        configure_logging(level=config.log_level())
        logger.error("%s", e)
        return errors.EXIT_CONFIG

    configure_logging(settings.log_folder, level=config.log_level())

    from snapshot.orchestrator.state_machine import CaptureScheduler

    status = StatusStore()
    result = CaptureScheduler.from_settings(settings, status).run()
    code = errors.exit_code_for(result.error_code)
    logger.info(
        "exit %s: state=%s frames=%s dropped=%s lost=%s",
        code, result.state.value, result.frames_written, result.transient_failures, result.write_failures,
    )
    return code


def assemble_main(argv=None) -> int:
    args = _parser("snapshot-assemble", "Stitch captured frames into a video with ffmpeg.").parse_args(argv)
    configure_logging(level=config.log_level())

    from snapshot.encoding.assemble import assemble

    try:
        manifest = config.load_manifest(args.manifest)
        output = assemble(manifest)
    except ConfigInvalid as e:
        logger.error("%s", e)
        return errors.EXIT_CONFIG
    except AssemblyFailure as e:
        logger.error("%s", e)
        return errors.EXIT_ASSEMBLY
    logger.info("video written to %s", output)
    return errors.EXIT_OK


def api_main(argv=None) -> int:
    parser = _parser("snapshot-api", "Serve capture status over HTTP.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args(argv)
    configure_logging(level=config.log_level())

    import uvicorn
    from snapshot.services.api import create_app

    try:
        manifest = config.load_manifest(args.manifest)
    except ConfigInvalid as e:
        logger.error("%s", e)
        return errors.EXIT_CONFIG
    uvicorn.run(create_app(manifest), host=args.host, port=args.port)
    return errors.EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
