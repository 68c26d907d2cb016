"""Read-only projections of the period ledgers into filing artifacts.

Builders never modify records. Output depends only on the stored inputs, so
rebuilding from an unchanged ledger yields byte-identical artifacts. Once a
cached artifact is submitted or paid its contents are frozen: a rebuild that
would change them fails with RecordLockedError.
"""
import logging
from collections import OrderedDict
from typing import Dict, List, Optional, Tuple, Union

from api.payroll_source import PayrollSource
from database.repository import PayrollRepository
from models.filing import ArtifactType, FilingArtifact, WithholdingPayment
from models.payroll import DeductionRecord, PayPeriod, FROZEN_STATUSES, PROGRAM_SHARES
from utils.validators import validate_npwp
from . import contributions
from .errors import InvalidEarningsError, RecordLockedError, RecordNotFoundError
from .locks import KeyedLocks
from .rate_registry import RateTableRegistry

logger = logging.getLogger(__name__)

NO_DEPARTMENT = "(unassigned)"


def _program_totals(records: List[DeductionRecord]) -> Dict[str, Dict[str, int]]:
    totals = OrderedDict()
    for program, (emp, er) in PROGRAM_SHARES.items():
        employee = sum(getattr(r, emp) for r in records) if emp else 0
        employer = sum(getattr(r, er) for r in records) if er else 0
        totals[program] = {'employee': employee, 'employer': employer, 'total': employee + employer}
    return totals


def _money_totals(records: List[DeductionRecord]) -> Dict[str, int]:
    return {
        'headcount': len(records),
        'gross_income': sum(r.gross_income for r in records),
        'income_tax': sum(r.income_tax for r in records),
        'employee_total': sum(r.employee_total for r in records),
        'employer_total': sum(r.employer_total for r in records),
        'other_deductions': sum(r.other_deductions for r in records),
        'net_income': sum(r.net_income for r in records),
    }


def _filing_totals(records: List[DeductionRecord]) -> Tuple[Dict[str, Dict[str, int]], Dict[str, int]]:
    """Program totals plus money totals split into tax and social insurance"""
    programs = _program_totals(records)
    totals = _money_totals(records)
    totals['social_insurance_employee'] = sum(
        p['employee'] for name, p in programs.items() if name != 'income_tax')
    totals['social_insurance_employer'] = sum(
        p['employer'] for name, p in programs.items() if name != 'income_tax')
    return programs, totals


def _describe(artifact: FilingArtifact) -> str:
    return " ".join(part for part in artifact.key if part)


class FilingBuilder:
    """Builds monthly summaries, annual certificates and summaries, and withholding registers"""

    def __init__(self, repository: PayrollRepository, registry: RateTableRegistry, source: PayrollSource,
                 locks: Optional[KeyedLocks] = None):
        self.repo = repository
        self.registry = registry
        self.source = source
        self.locks = locks or KeyedLocks()

    def _is_frozen(self, artifact: FilingArtifact) -> bool:
        """True when the cached copy is frozen and identical; raise when it is frozen and differs"""
        status = self.repo.get_artifact_status(*artifact.key)
        if status not in FROZEN_STATUSES:
            return False
        cached = self.repo.get_artifact(*artifact.key)
        if cached.checksum != artifact.checksum:
            raise RecordLockedError(
                f"Artifact {_describe(artifact)} is {status.value}; its contents can no longer change")
        return True

    def _store(self, artifact: FilingArtifact) -> FilingArtifact:
        with self.locks.hold(('artifact',) + artifact.key):
            if not self._is_frozen(artifact):
                self.repo.save_artifact(artifact)
        return artifact

    def build_monthly_summary(self, company_id: str, period: Union[str, PayPeriod]) -> FilingArtifact:
        period = PayPeriod.parse(period)
        ledger = self.repo.get_period_ledger(company_id, period)
        records = list(ledger.records)

        departments = OrderedDict()
        for name in sorted({r.department or NO_DEPARTMENT for r in records}):
            members = [r for r in records if (r.department or NO_DEPARTMENT) == name]
            summary = _money_totals(members)
            summary['programs'] = _program_totals(members)
            departments[name] = summary

        programs, totals = _filing_totals(records)
        payload = {
            'company_id': company_id,
            'period': str(period),
            'rate_table_versions': sorted({r.rate_table_version for r in records}),
            'programs': programs,
            'departments': departments,
            'totals': totals,
            'records': [
                {'employee_id': r.employee_id, 'record_id': r.record_id, 'checksum': r.checksum}
                for r in records
            ],
        }
        artifact = self._store(FilingArtifact(company_id, str(period), ArtifactType.MONTHLY_SUMMARY, "", payload))
        logger.info("Built monthly summary %s %s over %d records", company_id, period, len(records))
        return artifact

    def build_annual_certificate(self, company_id: str, employee_id: str, year: int) -> FilingArtifact:
        """Year-end certificate (1721-A1) from the employee's monthly records at one company"""
        records = self.repo.get_employee_year(company_id, employee_id, int(year))
        if not records:
            raise RecordNotFoundError(
                f"No deduction records for employee {employee_id} at {company_id} in {year}")

        totals = _money_totals(records)
        del totals['headcount']
        payload = {
            'company_id': company_id,
            'employee_id': employee_id,
            'year': int(year),
            'tax_status': records[-1].earnings.tax_status,
            'months': [r.period.month for r in records],
            'period_start': str(records[0].period),
            'period_end': str(records[-1].period),
            'programs': _program_totals(records),
            'totals': totals,
            'monthly': [
                {
                    'period': str(r.period),
                    'record_id': r.record_id,
                    'gross_income': r.gross_income,
                    'income_tax': r.income_tax,
                    'income_tax_rate': str(r.income_tax_rate) if r.income_tax_rate is not None else None,
                    'employee_total': r.employee_total,
                    'net_income': r.net_income,
                    'rate_table_version': r.rate_table_version,
                }
                for r in records
            ],
        }
        artifact = self._store(
            FilingArtifact(company_id, str(year), ArtifactType.ANNUAL_CERTIFICATE, employee_id, payload))
        logger.info("Built annual certificate for %s at %s %s (%d months)",
                    employee_id, company_id, year, len(records))
        return artifact

    def build_annual_summary(self, company_id: str, year: int) -> FilingArtifact:
        """Company year-end report (1721): the year's ledgers folded per month and per employee"""
        year = int(year)
        records = self.repo.get_company_year(company_id, year)
        if not records:
            raise RecordNotFoundError(f"No deduction records for {company_id} in {year}")

        months = sorted({r.period.month for r in records})
        employee_ids = sorted({r.employee_id for r in records})

        programs, totals = _filing_totals(records)
        totals['employee_months'] = totals['headcount']
        totals['headcount'] = len(employee_ids)

        monthly = []
        for month in months:
            members = [r for r in records if r.period.month == month]
            entry = _money_totals(members)
            entry['period'] = str(PayPeriod(year, month))
            monthly.append(entry)

        employees = []
        for employee_id in employee_ids:
            members = [r for r in records if r.employee_id == employee_id]
            entry = _money_totals(members)
            del entry['headcount']
            entry['employee_id'] = employee_id
            entry['months'] = [r.period.month for r in members]
            employees.append(entry)

        payload = {
            'company_id': company_id,
            'year': year,
            'months': months,
            'rate_table_versions': sorted({r.rate_table_version for r in records}),
            'programs': programs,
            'totals': totals,
            'monthly': monthly,
            'employees': employees,
        }
        artifact = self._store(FilingArtifact(company_id, str(year), ArtifactType.ANNUAL_SUMMARY, "", payload))
        logger.info("Built annual summary %s %s: %d employees over %d months",
                    company_id, year, len(employee_ids), len(months))
        return artifact

    def build_withholding_register(self, company_id: str, period: Union[str, PayPeriod]) -> List[FilingArtifact]:
        """One withholding slip per payee (and form) for non-employment income.

        Cached slips of payees that are no longer in the register are removed.
        """
        period = PayPeriod.parse(period)
        table = self.registry.lookup(period.reference_date)
        payments = self.source.get_withholding_payments(company_id, period)

        grouped: Dict[tuple, List[WithholdingPayment]] = {}
        for payment in payments:
            entry = table.withholding_rates.get(payment.income_type)
            if entry is None:
                raise InvalidEarningsError(
                    f"No withholding rate for income type {payment.income_type!r} in {table.version}")
            grouped.setdefault((entry.form_code, payment.payee_id), []).append(payment)

        artifacts = []
        sequence: Dict[str, int] = {}
        for (form_code, payee_id) in sorted(grouped):
            group = sorted(grouped[(form_code, payee_id)],
                           key=lambda p: (p.income_type, p.reference, p.gross_amount))
            sequence[form_code] = sequence.get(form_code, 0) + 1
            slip_number = f"BP{form_code}-{period.year % 100:02d}{period.month:02d}-{sequence[form_code]:05d}"

            lines = []
            for payment in group:
                has_tax_id = validate_npwp(payment.tax_id)
                tax = contributions.withholding_tax(payment.gross_amount, payment.income_type, table, has_tax_id)
                rate = table.withholding_rates[payment.income_type].rate
                if not has_tax_id:
                    rate = rate * (1 + table.missing_tax_id_surcharge)
                lines.append({
                    'income_type': payment.income_type,
                    'reference': payment.reference,
                    'gross_amount': payment.gross_amount,
                    'rate': str(rate.normalize()),
                    'tax_withheld': tax,
                })

            first = group[0]
            payload = {
                'slip_number': slip_number,
                'form_code': form_code,
                'company_id': company_id,
                'period': str(period),
                'payee_id': payee_id,
                'payee_name': first.payee_name,
                'tax_id': first.tax_id,
                'rate_table_version': table.version,
                'lines': lines,
                'gross_total': sum(line['gross_amount'] for line in lines),
                'tax_total': sum(line['tax_withheld'] for line in lines),
            }
            artifacts.append(FilingArtifact(company_id, str(period), ArtifactType.WITHHOLDING_SLIP,
                                            f"{form_code}/{payee_id}", payload))

        kind = ArtifactType.WITHHOLDING_SLIP.value
        cached = self.repo.get_artifact_statuses(company_id, str(period), kind)
        stale = sorted(set(cached) - {a.subject_id for a in artifacts})
        frozen_stale = [subject_id for subject_id in stale if cached[subject_id] in FROZEN_STATUSES]
        if frozen_stale:
            raise RecordLockedError(
                f"Withholding slips {', '.join(frozen_stale)} for {company_id} {period} are already filed "
                f"and would drop out of the register")
        # A frozen conflict must leave the cache untouched
        for artifact in artifacts:
            self._is_frozen(artifact)

        for artifact in artifacts:
            self._store(artifact)
        removed = self.repo.delete_artifacts(company_id, str(period), kind, stale)
        if removed:
            logger.info("Removed %d stale withholding slips for %s %s", removed, company_id, period)

        logger.info("Built withholding register %s %s: %d slips", company_id, period, len(artifacts))
        return artifacts
