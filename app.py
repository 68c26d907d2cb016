from flask import Flask, jsonify, request, send_file
from datetime import date
from pathlib import Path
import sys
import logging

sys.path.insert(0, str(Path(__file__).parent / 'src'))

from api.mock_payroll_source import MockPayrollSource
from database.db import init_db
from database.repository import PayrollRepository
from models.filing import FilingArtifact
from models.rates import RateTable
from processors import (
    DeductionEngine, RateTableRegistry, FilingWorkbookExporter, WithholdingRegisterXML, parse_earnings,
    PayrollEngineError, InvalidEarningsError, RateNotFoundError, RecordNotFoundError,
)
from utils.validators import validate_period
from config.settings import DEBUG, LOG_LEVEL, OUTPUT_DIR, RATE_TABLES_PATH, SECRET_KEY

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    InvalidEarningsError: 400,
    RateNotFoundError: 404,
    RecordNotFoundError: 404,
}


def _rate_table_json(table: RateTable):
    def split(rates):
        return {
            'employee_rate': str(rates.employee_rate),
            'employer_rate': str(rates.employer_rate),
            'salary_cap': rates.salary_cap,
            'salary_floor': rates.salary_floor,
        }

    def brackets(rows):
        return [{'upper_bound': b.upper_bound, 'rate': str(b.rate)} for b in rows]

    rules = table.income_tax
    return {
        'version': table.version,
        'effective_from': table.effective_from.isoformat(),
        'effective_to': table.effective_to.isoformat() if table.effective_to else None,
        'income_tax': {
            'periods_per_year': rules.periods_per_year,
            'brackets': brackets(rules.brackets),
            'default_status': rules.default_status,
            'non_taxable_allowances': dict(rules.non_taxable_allowances),
            'withholding_method': rules.withholding_method,
            'effective_rate_categories': dict(rules.effective_rate_categories),
            'effective_rate_tables': {k: brackets(v) for k, v in rules.effective_rate_tables.items()},
        },
        'health_insurance': split(table.health_insurance),
        'work_injury_rates': {k: str(v) for k, v in table.work_injury_rates.items()},
        'default_risk_class': table.default_risk_class,
        'death_benefit_rate': str(table.death_benefit_rate),
        'old_age_savings': split(table.old_age_savings),
        'pension': split(table.pension),
        'withholding_rates': {
            k: {'rate': str(v.rate), 'form_code': v.form_code} for k, v in table.withholding_rates.items()
        },
        'missing_tax_id_surcharge': str(table.missing_tax_id_surcharge),
    }


def _artifact_json(artifact: FilingArtifact):
    return {
        'company_id': artifact.company_id,
        'period_key': artifact.period_key,
        'artifact_type': artifact.artifact_type.value,
        'subject_id': artifact.subject_id,
        'checksum': artifact.checksum,
        'payload': artifact.payload,
    }


def _check_period(period: str):
    if not validate_period(period):
        raise InvalidEarningsError(f"Invalid pay period {period!r} (expected YYYY-MM)")


def create_app(engine: DeductionEngine = None, output_dir: Path = None) -> Flask:
    """Build the Flask app around an engine (defaults to the configured store)"""
    if engine is None:
        init_db()
        engine = DeductionEngine(RateTableRegistry.from_file(RATE_TABLES_PATH),
                                 PayrollRepository(), MockPayrollSource())
        logger.info("Deduction engine ready with rate tables from %s", RATE_TABLES_PATH)
    output_dir = Path(output_dir) if output_dir else OUTPUT_DIR

    app = Flask(__name__)
    app.config['SECRET_KEY'] = SECRET_KEY
    app.config['DEBUG'] = DEBUG
    app.config['ENGINE'] = engine

    @app.errorhandler(PayrollEngineError)
    def handle_engine_error(error):
        status = next((code for cls, code in ERROR_STATUS.items() if isinstance(error, cls)), 409)
        return jsonify({'error': type(error).__name__, 'message': str(error)}), status

    @app.errorhandler(ValueError)
    def handle_value_error(error):
        return jsonify({'error': 'ValueError', 'message': str(error)}), 400

    # ========== Rate Tables ==========

    @app.route('/api/rates/<as_of>', methods=['GET'])
    def get_rate_table(as_of):
        table = engine.lookup(date.fromisoformat(as_of))
        return jsonify(_rate_table_json(table))

    @app.route('/api/rates', methods=['POST'])
    def register_rate_table():
        try:
            table = RateTable.from_dict(request.get_json(force=True))
        except (AttributeError, KeyError, TypeError) as e:
            raise ValueError(f"Malformed rate table: {e}")
        engine.register(table)
        return jsonify(_rate_table_json(table)), 201

    # ========== Calculation ==========

    @app.route('/api/companies/<company_id>/periods/<period>/employees/<employee_id>/calculate', methods=['POST'])
    def calculate(company_id, period, employee_id):
        _check_period(period)
        data = request.get_json(force=True) or {}
        if not isinstance(data, dict):
            raise InvalidEarningsError("Request body must be a JSON object")
        force = bool(data.pop('force', False))
        record = engine.calculate(company_id, employee_id, period, parse_earnings(data), force=force)
        return jsonify(record.to_dict())

    @app.route('/api/companies/<company_id>/periods/<period>/run', methods=['POST'])
    def run_period(company_id, period):
        _check_period(period)
        data = request.get_json(silent=True) or {}
        result = engine.run_period(company_id, period, force=bool(data.get('force', False)))
        return jsonify(result.to_dict())

    @app.route('/api/companies/<company_id>/periods/<period>/rerun', methods=['POST'])
    def rerun(company_id, period):
        _check_period(period)
        data = request.get_json(force=True) or {}
        employee_ids = data.get('employee_ids') or []
        result = engine.rerun(company_id, period, employee_ids, force=bool(data.get('force', False)))
        return jsonify(result.to_dict())

    @app.route('/api/records/<path:record_id>/verify', methods=['GET'])
    def verify_record(record_id):
        reproduced, matches = engine.recalculate(record_id)
        return jsonify({'record': reproduced.to_dict(), 'checksum_matches': matches})

    @app.route('/api/records/<path:record_id>/transition', methods=['POST'])
    def transition(record_id):
        data = request.get_json(force=True) or {}
        record = engine.transition(record_id, data.get('status', ''))
        return jsonify(record.to_dict())

    # ========== Filing ==========

    @app.route('/api/companies/<company_id>/periods/<period>/summary', methods=['GET'])
    def monthly_summary(company_id, period):
        _check_period(period)
        return jsonify(_artifact_json(engine.build_monthly_summary(company_id, period)))

    @app.route('/api/companies/<company_id>/periods/<period>/summary.xlsx', methods=['GET'])
    def monthly_summary_xlsx(company_id, period):
        _check_period(period)
        artifact = engine.build_monthly_summary(company_id, period)
        filepath = FilingWorkbookExporter(output_dir / "filings").export_monthly_summary(artifact)
        return send_file(filepath, as_attachment=True)

    @app.route('/api/companies/<company_id>/employees/<employee_id>/certificates/<int:year>', methods=['GET'])
    def annual_certificate(company_id, employee_id, year):
        return jsonify(_artifact_json(engine.build_annual_certificate(company_id, employee_id, year)))

    @app.route('/api/companies/<company_id>/employees/<employee_id>/certificates/<int:year>.xlsx', methods=['GET'])
    def annual_certificate_xlsx(company_id, employee_id, year):
        artifact = engine.build_annual_certificate(company_id, employee_id, year)
        filepath = FilingWorkbookExporter(output_dir / "filings").export_annual_certificate(artifact)
        return send_file(filepath, as_attachment=True)

    @app.route('/api/companies/<company_id>/years/<int:year>/summary', methods=['GET'])
    def annual_summary(company_id, year):
        return jsonify(_artifact_json(engine.build_annual_summary(company_id, year)))

    @app.route('/api/companies/<company_id>/years/<int:year>/summary.xlsx', methods=['GET'])
    def annual_summary_xlsx(company_id, year):
        artifact = engine.build_annual_summary(company_id, year)
        filepath = FilingWorkbookExporter(output_dir / "filings").export_annual_summary(artifact)
        return send_file(filepath, as_attachment=True)

    @app.route('/api/companies/<company_id>/periods/<period>/withholding', methods=['GET'])
    def withholding_register(company_id, period):
        _check_period(period)
        slips = engine.build_withholding_register(company_id, period)
        return jsonify([_artifact_json(slip) for slip in slips])

    @app.route('/api/companies/<company_id>/periods/<period>/withholding.xml', methods=['GET'])
    def withholding_register_xml(company_id, period):
        _check_period(period)
        slips = engine.build_withholding_register(company_id, period)
        filepath = WithholdingRegisterXML(output_dir / "tax_forms").generate(slips, company_id, period)
        return send_file(filepath, as_attachment=True, mimetype='application/xml')

    @app.route('/api/artifacts/transition', methods=['POST'])
    def transition_artifact():
        data = request.get_json(force=True) or {}
        status = engine.transition_artifact(
            data.get('company_id', ''), data.get('period_key', ''), data.get('artifact_type', ''),
            data.get('subject_id', ''), data.get('status', ''),
        )
        return jsonify({'status': status.value})

    return app


if __name__ == '__main__':
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    create_app().run(host='0.0.0.0', port=5000)
