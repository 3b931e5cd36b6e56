#!/usr/bin/env python3
"""CDK entry point for the record transform pipeline."""

import os

import aws_cdk as cdk

from stacks import RecordPipelineStack


def main() -> None:
    app = cdk.App()

    env = cdk.Environment(
        account=os.environ.get("CDK_DEFAULT_ACCOUNT"),
        region=os.environ.get("CDK_DEFAULT_REGION", "us-east-1"),
    )

    RecordPipelineStack(
        app,
        "RecordPipelineStack",
        project_name=app.node.try_get_context("project_name") or "record-pipeline",
        output_prefix=app.node.try_get_context("output_prefix") or "processed/",
        log_level=app.node.try_get_context("log_level") or "INFO",
        crawler_schedule=app.node.try_get_context("crawler_schedule"),
        env=env,
        description="S3 -> Lambda record transform with Glue catalog and Athena",
    )

    app.synth()


if __name__ == "__main__":
    main()
