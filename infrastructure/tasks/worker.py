"""Run a storefront worker that also fires the beat schedule.

Production deployments use the Celery CLI with separate beat; this is for
local runs.
"""
from __future__ import annotations

from .config.celery import celery_app


def main() -> None:
    celery_app.worker_main(argv=[
        "worker",
        "--hostname=storefront@%h",
        "--queues=high,default,low",
        "--beat",
        "--loglevel=INFO",
    ])


if __name__ == "__main__":
    main()
