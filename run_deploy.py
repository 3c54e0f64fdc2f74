"""
run_deploy.py - Single entry point for nosdeploy

Usage:
    python run_deploy.py job.json --name my-job --timeout 3600
    python run_deploy.py job.json --direct                 # list the job, no deployment
    python run_deploy.py --ipfs-hash Qm... --direct        # post an already pinned definition
"""

import argparse
import os
import sys


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Post jobs and deployments to the Nosana network")
    parser.add_argument("definition", nargs="?", default="job.json", help="job definition JSON file")
    parser.add_argument("--name", default="nosdeploy", help="deployment name")
    parser.add_argument("--timeout", type=int, default=3600, help="job timeout in seconds")
    parser.add_argument("--replicas", type=int, default=1)
    parser.add_argument("--strategy", default="SIMPLE", choices=["SIMPLE", "SIMPLE-EXTEND", "SCHEDULED", "INFINITE"])
    parser.add_argument("--schedule", default=None, help="cron expression for SCHEDULED")
    parser.add_argument("--ipfs-hash", default=None, help="use an already pinned job definition")
    parser.add_argument("--direct", action="store_true", help="post the job on-chain without a deployment")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    import asyncio
    from loguru import logger

    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        level=os.getenv("LOG_LEVEL", "INFO"),
    )

    from nosdeploy.engines.job_engine import main as engine_main
    from nosdeploy.errors import NosDeployError

    try:
        return asyncio.run(
            engine_main(
                args.definition,
                name=args.name,
                timeout_seconds=args.timeout,
                replicas=args.replicas,
                strategy=args.strategy,
                schedule=args.schedule,
                ipfs_hash=args.ipfs_hash,
                direct=args.direct,
            )
        )
    except NosDeployError as e:
        logger.error(f"RUN_FAILED | {type(e).__name__} | {e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
