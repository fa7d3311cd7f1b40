import argparse
import asyncio
import json
import sys
from datetime import timedelta

from predictive_metrics.config import config
from predictive_metrics.db.connection import DatabaseConnection
from predictive_metrics.exceptions import PredictiveMetricsError
from predictive_metrics.logging_setup import logger, get_logger
from predictive_metrics.schemas import ForecastType
from predictive_metrics.services import (
    AnomalyDetectionService, FinancialForecastService, InventoryOptimizationService,
    ProductAssociationService, SalesForecastService, create_prediction_service
)


async def run_command(args):
    """Run one command and return its JSON-serializable result.

    Args:
        args: Parsed command-line arguments
    """
    log = get_logger('predictive_metrics.cli')
    connection = DatabaseConnection()

    try:
        if args.command == 'init-db':
            await connection.create_all_tables()
            return {'created': True, 'database': connection.db_type}

        service = await create_prediction_service(connection)
        log.info(f"Running {args.command} on {connection.db_type}")

        if args.command == 'sales':
            return await SalesForecastService(service).get_sales_forecast(
                args.start_date, args.end_date, args.forecast_days, args.item_id,
                args.force_refresh, args.seed
            )

        if args.command == 'financial':
            return await FinancialForecastService(service).get_predictive_metrics(
                args.start_date, args.end_date, args.forecast_days, args.force_refresh, args.seed
            )

        if args.command == 'anomalies':
            return await AnomalyDetectionService(service).detect_inventory_anomalies(
                args.start_date, args.end_date, args.sensitivity, args.force_refresh, args.seed
            )

        if args.command == 'optimizations':
            return await InventoryOptimizationService(service).get_inventory_optimizations(
                args.force_refresh, args.seed
            )

        if args.command == 'apply':
            return await InventoryOptimizationService(service).apply_recommendation(
                args.recommendation_id, args.applied_by
            )

        if args.command == 'associations':
            return await ProductAssociationService(service).get_product_associations(
                args.min_support, args.min_confidence, args.item_id, args.category,
                args.force_refresh, args.seed
            )

        if args.command == 'purge':
            forecast_type = ForecastType.from_string(args.forecast_type)
            deleted = await service.repository.purge_older_than(forecast_type, timedelta(days=args.days))
            return {'forecast_type': forecast_type.value, 'deleted': deleted}

        raise ValueError(f"Unknown command: {args.command}")
    finally:
        await connection.dispose()


def build_parser():
    """Build the command-line parser."""
    parser = argparse.ArgumentParser(description='Predictive metrics for the retail dashboard')
    parser.add_argument('--verbose', '-v', action='store_true', help='Display debug logging')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    subparsers.add_parser('init-db', help='Create the prediction tables')

    def add_refresh_options(command_parser):
        command_parser.add_argument('--force-refresh', action='store_true',
                                    help='Ignore cached predictions')
        command_parser.add_argument('--seed', type=int, help='Seed for estimated data')

    sales_parser = subparsers.add_parser('sales', help='Sales forecast')
    sales_parser.add_argument('--start-date', required=True, help='First day (YYYY-MM-DD)')
    sales_parser.add_argument('--end-date', required=True, help='Last day (YYYY-MM-DD)')
    sales_parser.add_argument('--forecast-days', type=int, default=7, help='Days after end date')
    sales_parser.add_argument('--item-id', type=int, help='Specific item to forecast')
    add_refresh_options(sales_parser)

    financial_parser = subparsers.add_parser('financial', help='Profit forecast and trends')
    financial_parser.add_argument('--start-date', required=True, help='First day (YYYY-MM-DD)')
    financial_parser.add_argument('--end-date', required=True, help='Last day (YYYY-MM-DD)')
    financial_parser.add_argument('--forecast-days', type=int, default=14, help='Days after end date')
    add_refresh_options(financial_parser)

    anomalies_parser = subparsers.add_parser('anomalies', help='Inventory anomalies')
    anomalies_parser.add_argument('--start-date', help='First day (YYYY-MM-DD)')
    anomalies_parser.add_argument('--end-date', help='Last day (YYYY-MM-DD)')
    anomalies_parser.add_argument('--sensitivity', choices=['low', 'medium', 'high'], default='medium')
    add_refresh_options(anomalies_parser)

    optimizations_parser = subparsers.add_parser('optimizations', help='Inventory recommendations')
    add_refresh_options(optimizations_parser)

    apply_parser = subparsers.add_parser('apply', help='Apply an inventory recommendation')
    apply_parser.add_argument('recommendation_id', type=int, help='Recommendation ID')
    apply_parser.add_argument('--applied-by', help='User applying the recommendation')

    associations_parser = subparsers.add_parser('associations', help='Product association rules')
    associations_parser.add_argument('--min-support', type=float, default=0.01)
    associations_parser.add_argument('--min-confidence', type=float, default=0.3)
    associations_parser.add_argument('--item-id', type=int, help='Rules involving this item')
    associations_parser.add_argument('--category', help='Rules within this category')
    add_refresh_options(associations_parser)

    purge_parser = subparsers.add_parser('purge', help='Delete old stored predictions')
    purge_parser.add_argument('--forecast-type', default='association',
                              choices=[forecast_type.value for forecast_type in ForecastType])
    purge_parser.add_argument('--days', type=int,
                              default=config.get_int('CACHE', 'association_retention_days', 7),
                              help='Keep predictions younger than this many days')

    return parser


def main(argv=None):
    """Main application entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    if args.verbose:
        logger.set_level('DEBUG')

    try:
        result = asyncio.run(run_command(args))
    except PredictiveMetricsError as e:
        logger.log_exception('predictive_metrics.cli', e, f"{args.command} failed")
        print(json.dumps(e.to_dict(), indent=2))
        return 2

    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
