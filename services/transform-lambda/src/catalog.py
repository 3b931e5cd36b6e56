"""
Operational tools for the catalog side of the pipeline.

The transform handler never calls these. They drive the two managed
collaborators that sit downstream of the processed bucket: the Glue crawler
that (re)derives the table schema, and Athena, which queries the table.
"""

import argparse
import json
import logging
import sys
import time
from typing import Callable, Optional

from botocore.exceptions import BotoCoreError, ClientError

from clients import AWSClientFactory
from config import load_config
from exceptions import CatalogError, ConfigurationError, QueryError
from logging_config import configure_logging

logger = logging.getLogger(__name__)

CRAWLER_BUSY_STATES = ("RUNNING", "STOPPING")
CRAWL_FAILED_STATUSES = ("FAILED", "CANCELLED")
QUERY_PENDING_STATES = ("QUEUED", "RUNNING")
QUERY_FAILED_STATES = ("FAILED", "CANCELLED")


def quote_identifier(name: str) -> str:
    """Quote a database or table name for Athena SQL, doubling embedded quotes."""
    return '"' + name.replace('"', '""') + '"'


class CrawlerRunner:
    """Starts a Glue crawler and waits for it to finish."""

    def __init__(
        self,
        crawler_name: str,
        glue_client=None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.crawler_name = crawler_name
        self.glue_client = glue_client or AWSClientFactory.get_glue_client()
        self.sleep = sleep
        self.clock = clock

    def start(self) -> None:
        """
        Start the crawler.

        A crawler that is already running counts as started.

        Raises:
            CatalogError: If the crawler does not exist or cannot be started
        """
        try:
            self.glue_client.start_crawler(Name=self.crawler_name)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code == "CrawlerRunningException":
                logger.warning(f"Crawler {self.crawler_name} is already running")
                return
            raise CatalogError(
                message=f"Failed to start crawler {self.crawler_name}: {e}",
                crawler_name=self.crawler_name,
                original_exception=e,
            )
        except BotoCoreError as e:
            raise CatalogError(
                message=f"Failed to start crawler {self.crawler_name}: {e}",
                crawler_name=self.crawler_name,
                original_exception=e,
            )

        logger.info(f"Started crawler: {self.crawler_name}")

    def describe(self) -> dict:
        try:
            return self.glue_client.get_crawler(Name=self.crawler_name)["Crawler"]
        except (BotoCoreError, ClientError) as e:
            raise CatalogError(
                message=f"Failed to describe crawler {self.crawler_name}: {e}",
                crawler_name=self.crawler_name,
                operation="GetCrawler",
                original_exception=e,
            )

    def get_state(self) -> str:
        return self.describe()["State"]

    def wait(self, timeout: float = 600, poll_interval: float = 10) -> dict:
        """
        Wait for the crawler to return to READY.

        Args:
            timeout: Maximum time to wait in seconds
            poll_interval: Time between status checks in seconds

        Returns:
            The crawler's LastCrawl information

        Raises:
            CatalogError: If the last crawl did not succeed or the wait timed out
        """
        deadline = self.clock() + timeout
        last_state = None

        while True:
            crawler = self.describe()
            state = crawler["State"]

            if state != last_state:
                logger.info(f"Crawler {self.crawler_name} state: {state}")
                last_state = state

            if state == "READY":
                last_crawl = crawler.get("LastCrawl", {})
                status = last_crawl.get("Status")
                if status in CRAWL_FAILED_STATUSES:
                    raise CatalogError(
                        message=(
                            f"Crawler {self.crawler_name} finished with status {status}: "
                            f"{last_crawl.get('ErrorMessage', 'no error message')}"
                        ),
                        crawler_name=self.crawler_name,
                        operation="GetCrawler",
                    )
                return last_crawl

            if self.clock() >= deadline:
                raise CatalogError(
                    message=f"Crawler {self.crawler_name} did not finish within {timeout} seconds",
                    crawler_name=self.crawler_name,
                    operation="GetCrawler",
                )

            self.sleep(poll_interval)

    def run(self, timeout: float = 600, poll_interval: float = 10) -> dict:
        self.start()
        return self.wait(timeout=timeout, poll_interval=poll_interval)


class QueryRunner:
    """Runs SQL against the catalogued table through Athena."""

    def __init__(
        self,
        database: str,
        workgroup: str = "primary",
        output_location: Optional[str] = None,
        athena_client=None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.database = database
        self.workgroup = workgroup
        self.output_location = output_location
        self.athena_client = athena_client or AWSClientFactory.get_athena_client()
        self.sleep = sleep
        self.clock = clock

    def start(self, sql: str) -> str:
        """Submit a query and return its execution id."""
        kwargs = {
            "QueryString": sql,
            "QueryExecutionContext": {"Database": self.database},
            "WorkGroup": self.workgroup,
        }
        if self.output_location:
            kwargs["ResultConfiguration"] = {"OutputLocation": self.output_location}

        try:
            response = self.athena_client.start_query_execution(**kwargs)
        except (BotoCoreError, ClientError) as e:
            raise QueryError(
                message=f"Failed to start query: {e}",
                original_exception=e,
            )

        execution_id = response["QueryExecutionId"]
        logger.info(f"Started query {execution_id} in workgroup {self.workgroup}")
        return execution_id

    def wait(self, execution_id: str, timeout: float = 300, poll_interval: float = 1) -> dict:
        """
        Poll until the query leaves the QUEUED/RUNNING states.

        Raises:
            QueryError: If the query failed, was cancelled, or the wait timed out
        """
        deadline = self.clock() + timeout

        while True:
            try:
                response = self.athena_client.get_query_execution(
                    QueryExecutionId=execution_id
                )
            except (BotoCoreError, ClientError) as e:
                raise QueryError(
                    message=f"Failed to get status of query {execution_id}: {e}",
                    query_execution_id=execution_id,
                    operation="GetQueryExecution",
                    original_exception=e,
                )

            execution = response["QueryExecution"]
            status = execution["Status"]
            state = status["State"]

            if state == "SUCCEEDED":
                return execution

            if state in QUERY_FAILED_STATES:
                raise QueryError(
                    message=(
                        f"Query {execution_id} {state.lower()}: "
                        f"{status.get('StateChangeReason', 'no reason given')}"
                    ),
                    query_execution_id=execution_id,
                    state=state,
                    operation="GetQueryExecution",
                )

            if self.clock() >= deadline:
                raise QueryError(
                    message=f"Query {execution_id} did not finish within {timeout} seconds",
                    query_execution_id=execution_id,
                    state=state,
                    operation="GetQueryExecution",
                )

            self.sleep(poll_interval)

    def results(self, execution_id: str) -> list[dict]:
        """Fetch all result rows as dicts keyed by column name."""
        rows: list[dict] = []
        columns: list[str] = []
        next_token = None
        first_page = True

        while True:
            kwargs = {"QueryExecutionId": execution_id}
            if next_token:
                kwargs["NextToken"] = next_token
            try:
                response = self.athena_client.get_query_results(**kwargs)
            except (BotoCoreError, ClientError) as e:
                raise QueryError(
                    message=f"Failed to fetch results of query {execution_id}: {e}",
                    query_execution_id=execution_id,
                    operation="GetQueryResults",
                    original_exception=e,
                )

            result_set = response["ResultSet"]
            if first_page:
                columns = [
                    column["Name"]
                    for column in result_set.get("ResultSetMetadata", {}).get("ColumnInfo", [])
                ]

            for index, row in enumerate(result_set.get("Rows", [])):
                values = [datum.get("VarCharValue") for datum in row.get("Data", [])]
                # SELECT results repeat the column names as the first row
                if first_page and index == 0 and values == columns:
                    continue
                rows.append(dict(zip(columns, values)))

            first_page = False
            next_token = response.get("NextToken")
            if not next_token:
                return rows

    def run(self, sql: str, timeout: float = 300, poll_interval: float = 1) -> list[dict]:
        execution_id = self.start(sql)
        self.wait(execution_id, timeout=timeout, poll_interval=poll_interval)
        return self.results(execution_id)

    def preview(self, table: str, limit: int = 10) -> list[dict]:
        return self.run(
            f"SELECT * FROM {quote_identifier(self.database)}.{quote_identifier(table)} "
            f"LIMIT {int(limit)}"
        )


def main(argv: Optional[list[str]] = None) -> int:
    """Command-line entry point for refreshing and querying the catalog."""
    config = load_config()
    configure_logging(level=config.log_level, service_name="record-catalog")

    parser = argparse.ArgumentParser(
        description="Refresh the processed-records catalog and query it with Athena"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    crawl = subparsers.add_parser("crawl", help="Run the Glue crawler and wait for it")
    crawl.add_argument("--crawler", default=config.catalog.crawler_name, help="Crawler name")
    crawl.add_argument("--timeout", type=float, default=600, help="Seconds to wait")

    query = subparsers.add_parser("query", help="Run an Athena query and print the rows")
    query.add_argument("sql", nargs="?", help="SQL to run (default: preview the table)")
    query.add_argument("--database", default=config.catalog.database_name, help="Glue database")
    query.add_argument("--table", default=config.catalog.table_name, help="Table to preview")
    query.add_argument("--workgroup", default=config.catalog.athena_workgroup, help="Athena workgroup")
    query.add_argument("--limit", type=int, default=10, help="Preview row limit")
    query.add_argument("--timeout", type=float, default=300, help="Seconds to wait")

    args = parser.parse_args(argv)

    try:
        if args.command == "crawl":
            if not args.crawler:
                raise ConfigurationError(
                    message="No crawler name given and GLUE_CRAWLER_NAME is not set",
                    config_key="GLUE_CRAWLER_NAME",
                )
            last_crawl = CrawlerRunner(args.crawler).run(timeout=args.timeout)
            print(json.dumps(last_crawl, indent=2, default=str))
        else:
            if not args.database:
                raise ConfigurationError(
                    message="No database given and GLUE_DATABASE_NAME is not set",
                    config_key="GLUE_DATABASE_NAME",
                )
            runner = QueryRunner(
                database=args.database,
                workgroup=args.workgroup,
                output_location=config.catalog.athena_output_location,
            )
            if args.sql:
                rows = runner.run(args.sql, timeout=args.timeout)
            else:
                rows = runner.preview(args.table, limit=args.limit)
            print(json.dumps(rows, indent=2))
    except (CatalogError, QueryError, ConfigurationError) as e:
        logger.error(e.message, extra={"error": e.to_dict()})
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
