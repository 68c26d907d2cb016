import argparse
import logging
from config.settings import LOG_LEVEL, RATE_TABLES_PATH, CURRENCY_SYMBOL
from database.db import init_db
from database.repository import PayrollRepository
from api.mock_payroll_source import MockPayrollSource
from processors import DeductionEngine, RateTableRegistry, FilingWorkbookExporter, WithholdingRegisterXML
from utils.formatters import format_currency

# Configure logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run statutory deductions for one pay period")
    parser.add_argument("--company", default="PT-TM", help="Company id")
    parser.add_argument("--period", required=True, help="Pay period (YYYY-MM)")
    parser.add_argument("--force", action="store_true", help="Recalculate frozen records as new versions")
    parser.add_argument("--export", action="store_true", help="Write the summary workbook and withholding XML")
    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point for the deduction engine"""
    args = parse_args(argv)
    logger.info("Starting payroll deduction run")

    # Initialize database
    logger.info("Initializing database...")
    init_db()

    engine = DeductionEngine(RateTableRegistry.from_file(RATE_TABLES_PATH),
                             PayrollRepository(), MockPayrollSource())
    result = engine.run_period(args.company, args.period, force=args.force)
    summary = engine.build_monthly_summary(args.company, args.period)
    totals = summary.payload['totals']

    print("=" * 60)
    print(f"Deductions for {args.company} - {args.period}")
    print("=" * 60)
    print(f"Processed: {len(result.processed)}   Skipped: {len(result.skipped)}   Errors: {len(result.errors)}")
    for error in result.errors:
        print(f"  ! {error.employee_id}: {error.error_type} - {error.message}")
    print(f"Gross income:     {format_currency(totals['gross_income'], CURRENCY_SYMBOL)}")
    print(f"PPh 21 withheld:  {format_currency(totals['income_tax'], CURRENCY_SYMBOL)}")
    print(f"Employee shares:  {format_currency(totals['employee_total'], CURRENCY_SYMBOL)}")
    print(f"Employer shares:  {format_currency(totals['employer_total'], CURRENCY_SYMBOL)}")
    print(f"Net pay:          {format_currency(totals['net_income'], CURRENCY_SYMBOL)}")

    if args.export:
        workbook = FilingWorkbookExporter().export_monthly_summary(summary)
        slips = engine.build_withholding_register(args.company, args.period)
        register = WithholdingRegisterXML().generate(slips, args.company, args.period)
        print(f"\nSummary workbook: {workbook}")
        print(f"Withholding register: {register}")
    print("=" * 60)
    return 0 if not result.errors else 1


if __name__ == "__main__":
    raise SystemExit(main())
