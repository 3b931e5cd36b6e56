"""
Record pipeline stack: raw bucket -> transform Lambda -> processed bucket,
catalogued by a Glue crawler and queried through an Athena workgroup.

Creates
- S3 raw, processed and Athena-results buckets (SSE-S3, no public access, TLS only)
- Lambda transform function triggered by ObjectCreated (*.json) on the raw bucket
- Glue database + crawler over <processed bucket>/<output prefix>
- Athena workgroup writing results to the results bucket
"""

import json
from pathlib import Path
from typing import Final, Optional

from aws_cdk import (
    BundlingOptions,
    CfnOutput,
    Duration,
    RemovalPolicy,
    Stack,
    Tags,
    aws_athena as athena,
    aws_glue as glue,
    aws_iam as iam,
    aws_lambda as _lambda,
    aws_logs as logs,
    aws_s3 as s3,
    aws_s3_notifications as s3n,
)
from constructs import Construct

LAMBDA_DIR: Final[Path] = Path(__file__).resolve().parents[2] / "services" / "transform-lambda"
ATHENA_RESULTS_RETENTION_DAYS: Final[int] = 30


class RecordPipelineStack(Stack):
    """Infrastructure for the record transform pipeline."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        project_name: str = "record-pipeline",
        output_prefix: str = "processed/",
        log_level: str = "INFO",
        crawler_schedule: Optional[str] = None,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.database_name = f"{project_name.replace('-', '_')}_db"
        self.table_name = output_prefix.strip("/") or "processed"
        self.crawler_name = f"{project_name}-processed-crawler"
        self.workgroup_name = f"{project_name}-workgroup"

        # 1) Buckets
        self.raw_bucket = self._bucket("RawBucket", f"{project_name}-raw-{self.account}-{self.region}")
        self.processed_bucket = self._bucket(
            "ProcessedBucket", f"{project_name}-processed-{self.account}-{self.region}"
        )
        self.results_bucket = self._bucket(
            "AthenaResultsBucket", f"{project_name}-athena-results-{self.account}-{self.region}"
        )
        self.results_bucket.add_lifecycle_rule(
            id="ExpireQueryResults",
            expiration=Duration.days(ATHENA_RESULTS_RETENTION_DAYS),
        )

        # 2) Transform Lambda + trigger
        self.transform_function = _lambda.Function(
            self,
            "TransformFunction",
            function_name=f"{project_name}-transform",
            runtime=_lambda.Runtime.PYTHON_3_12,
            handler="handler.handler",
            code=_lambda.Code.from_asset(
                str(LAMBDA_DIR),
                exclude=["tests", "**/__pycache__", "**/*.pyc"],
                bundling=BundlingOptions(
                    image=_lambda.Runtime.PYTHON_3_12.bundling_image,
                    command=[
                        "bash",
                        "-c",
                        "pip install -r requirements.txt -t /asset-output && cp -au src/. /asset-output",
                    ],
                ),
            ),
            timeout=Duration.seconds(60),
            memory_size=256,
            environment={
                "DESTINATION_BUCKET": self.processed_bucket.bucket_name,
                "OUTPUT_PREFIX": output_prefix,
                "GLUE_DATABASE_NAME": self.database_name,
                "GLUE_TABLE_NAME": self.table_name,
                "GLUE_CRAWLER_NAME": self.crawler_name,
                "ATHENA_WORKGROUP": self.workgroup_name,
                "LOG_LEVEL": log_level,
            },
            log_group=logs.LogGroup(
                self,
                "TransformFunctionLogs",
                retention=logs.RetentionDays.ONE_MONTH,
                removal_policy=RemovalPolicy.DESTROY,
            ),
            description="Stamps JSON records with processed_at/processed and copies them to the processed bucket",
        )
        self.raw_bucket.grant_read(self.transform_function)
        self.processed_bucket.grant_put(self.transform_function)

        self.raw_bucket.add_event_notification(
            s3.EventType.OBJECT_CREATED,
            s3n.LambdaDestination(self.transform_function),
            s3.NotificationKeyFilter(suffix=".json"),
        )

        # 3) Glue catalog + crawler
        database = glue.CfnDatabase(
            self,
            "CatalogDatabase",
            catalog_id=self.account,
            database_input=glue.CfnDatabase.DatabaseInputProperty(
                name=self.database_name,
                description=f"Processed records for {project_name}",
            ),
        )

        crawler_role = iam.Role(
            self,
            "CrawlerRole",
            assumed_by=iam.ServicePrincipal("glue.amazonaws.com"),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name("service-role/AWSGlueServiceRole")
            ],
        )
        self.processed_bucket.grant_read(crawler_role)

        crawler = glue.CfnCrawler(
            self,
            "ProcessedCrawler",
            name=self.crawler_name,
            role=crawler_role.role_arn,
            database_name=self.database_name,
            targets=glue.CfnCrawler.TargetsProperty(
                s3_targets=[
                    glue.CfnCrawler.S3TargetProperty(
                        path=f"s3://{self.processed_bucket.bucket_name}/{output_prefix}"
                    )
                ]
            ),
            schema_change_policy=glue.CfnCrawler.SchemaChangePolicyProperty(
                update_behavior="UPDATE_IN_DATABASE",
                delete_behavior="LOG",
            ),
            configuration=json.dumps({
                "Version": 1.0,
                "Grouping": {"TableGroupingPolicy": "CombineCompatibleSchemas"},
                "CrawlerOutput": {"Tables": {"AddOrUpdateBehavior": "MergeNewColumns"}},
            }),
            schedule=(
                glue.CfnCrawler.ScheduleProperty(schedule_expression=crawler_schedule)
                if crawler_schedule
                else None
            ),
        )
        crawler.add_dependency(database)

        # 4) Athena workgroup
        athena.CfnWorkGroup(
            self,
            "QueryWorkGroup",
            name=self.workgroup_name,
            state="ENABLED",
            recursive_delete_option=True,
            work_group_configuration=athena.CfnWorkGroup.WorkGroupConfigurationProperty(
                enforce_work_group_configuration=True,
                publish_cloud_watch_metrics_enabled=True,
                result_configuration=athena.CfnWorkGroup.ResultConfigurationProperty(
                    output_location=f"s3://{self.results_bucket.bucket_name}/query-results/",
                    encryption_configuration=athena.CfnWorkGroup.EncryptionConfigurationProperty(
                        encryption_option="SSE_S3"
                    ),
                ),
            ),
        )

        Tags.of(self).add("Project", project_name)
        self._create_outputs()

    def _bucket(self, construct_id: str, bucket_name: str) -> s3.Bucket:
        return s3.Bucket(
            self,
            construct_id,
            bucket_name=bucket_name,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            encryption=s3.BucketEncryption.S3_MANAGED,
            enforce_ssl=True,
            removal_policy=RemovalPolicy.RETAIN,
        )

    def _create_outputs(self) -> None:
        CfnOutput(self, "RawBucketName", value=self.raw_bucket.bucket_name)
        CfnOutput(self, "ProcessedBucketName", value=self.processed_bucket.bucket_name)
        CfnOutput(self, "AthenaResultsBucketName", value=self.results_bucket.bucket_name)
        CfnOutput(self, "TransformFunctionName", value=self.transform_function.function_name)
        CfnOutput(self, "TransformFunctionArn", value=self.transform_function.function_arn)
        CfnOutput(self, "GlueDatabaseName", value=self.database_name)
        CfnOutput(self, "GlueCrawlerName", value=self.crawler_name)
        CfnOutput(self, "AthenaWorkGroupName", value=self.workgroup_name)
