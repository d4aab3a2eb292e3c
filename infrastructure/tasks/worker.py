"""Convenience entry point for running Celery worker.

Deployments usually run `celery -A infrastructure.tasks worker -B`; this small
script serves local runs and Procfile-style runners.
"""
from __future__ import annotations

from .config.celery import celery_app


def main() -> None:
    # embedded beat drives the settlement, discount and transfer sweeps
    celery_app.worker_main(
        argv=["worker", "-B", "--loglevel=INFO", "--hostname=certmarket@%h"],
    )


if __name__ == "__main__":
    main()
