"""
Batch reconciliation of a Softland export against a budget control register.

Loads both files, maps their columns (from JSON mapping files or by header
suggestion), reconciles them and prints the summary plus the monthly
breakdown of discrepancies. Optionally writes the Excel export, a JSON
result file and a narrative report.

Example:
    python scripts/reconcile.py softland.xlsx control.xlsx --entity "Colegio Pullinque" \\
        --export discrepancias.xlsx
"""

import argparse
import json
from pathlib import Path
from typing import Dict, Optional

import sys
sys.path.append(str(Path(__file__).resolve().parents[1]))

from audit.reducer import auto_reconcile, summarize
from core.errors import ReconciliationError
from core.observability.logging import configure_logging, with_correlation
from ingestion.loader import load_file
from mapping.engine import missing_fields, prepare_records, suggest_mapping
from models.canonical import AnalysisResult, DataFile, Source
from reconciliation.engine import reconcile
from reporting.export import export_discrepancies, export_filename
from reporting.monthly import aggregate_by_month
from reporting.narrative import build_report_summary, generate_report


def load_mapping(path: Optional[Path], data_file: DataFile) -> Dict[str, str]:
    """Mapping from a JSON file, or suggested from the file's headers."""
    if path is None:
        return suggest_mapping(data_file.headers)
    return json.loads(path.read_text(encoding="utf-8"))


def format_clp(amount: int) -> str:
    """Chilean peso formatting: ``$1.234.567``."""
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,}".replace(",", ".")


def print_analysis(analysis: AnalysisResult, audit_state: Dict) -> None:
    """Print the reconciliation result in a readable format."""
    audit = summarize(audit_state, analysis)

    print(f"\nSoftland válidos:  {analysis.softland_total}")
    print(f"Control válidos:   {analysis.control_total}")
    print(f"Coincidencias:     {analysis.matched_count}")
    print(f"Faltantes:         {analysis.missing_count}")
    print(f"Monto faltante:    {format_clp(analysis.missing_amount)}")

    if audit_state:
        print(f"\nVerificados:       {audit.verified_count}")
        print(f"Falsos positivos:  {audit.failed_count}")
        print(f"Faltante real:     {audit.real_missing_count} ({format_clp(audit.real_missing_amount)})")

    monthly = aggregate_by_month(analysis.missing_records)
    if monthly:
        print("\nDiscrepancias por mes:")
        for month, bucket in monthly:
            print(f"  {month:<12} {bucket.count:>6}  {format_clp(bucket.total):>16}")


def main() -> int:
    parser = argparse.ArgumentParser(description="Reconcile a Softland export against the control register")
    parser.add_argument("softland", type=Path, help="Softland export (.csv, .xlsx)")
    parser.add_argument("control", type=Path, help="Control register (.csv, .xlsx)")
    parser.add_argument("--softland-mapping", type=Path, help="JSON column mapping for the Softland file")
    parser.add_argument("--control-mapping", type=Path, help="JSON column mapping for the control file")
    parser.add_argument("--entity", default="Entidad", help="Entity name used in exports and reports")
    parser.add_argument("--auto", action="store_true", help="Auto-reconcile every discrepancy by invoice number")
    parser.add_argument("--export", type=Path, nargs="?", const=Path("."),
                        help="Write the Excel export (file or directory)")
    parser.add_argument("--output", type=Path, help="Output JSON file for results")
    parser.add_argument("--report", action="store_true", help="Generate the narrative report")
    parser.add_argument("--json-logs", action="store_true", help="Log as JSON lines")
    args = parser.parse_args()

    configure_logging(json_format=args.json_logs or None)

    try:
        softland_file = load_file(args.softland.name, args.softland.read_bytes())
        control_file = load_file(args.control.name, args.control.read_bytes())
    except ReconciliationError as e:
        print(f"❌ {e.message}")
        return 1

    softland_mapping = load_mapping(args.softland_mapping, softland_file)
    control_mapping = load_mapping(args.control_mapping, control_file)

    incomplete = False
    for label, mapping in (("Softland", softland_mapping), ("Control", control_mapping)):
        print(f"{label} mapping: {json.dumps(mapping, ensure_ascii=False)}")
        missing = missing_fields(mapping)
        if missing:
            print(f"❌ {label}: columnas sin mapear: {', '.join(missing)}")
            incomplete = True
    if incomplete:
        return 2

    print("=" * 60)
    print(f"CONCILIACIÓN {args.entity.upper()}")
    print("=" * 60)

    with with_correlation(entity_id=args.entity):
        softland = prepare_records(softland_file.rows, softland_mapping, Source.SOFTLAND)
        control = prepare_records(control_file.rows, control_mapping, Source.CONTROL)
        analysis = reconcile(softland.records, control.records)

    audit_state: Dict = {}
    if args.auto:
        audit_state = auto_reconcile(
            audit_state,
            [r.key for r in analysis.missing_records],
            analysis.control_records,
            analysis.missing_records,
        )

    print_analysis(analysis, audit_state)

    if args.export is not None:
        target = args.export
        if target.is_dir():
            target = target / export_filename(args.entity)
        try:
            target.write_bytes(export_discrepancies(analysis.missing_records, audit_state))
        except ReconciliationError as e:
            print(f"❌ {e.message}")
            return 1
        print(f"\nExport written to {target}")

    if args.output:
        output_data = {
            "entity": args.entity,
            "analysis": analysis.model_dump(mode="json", exclude={"softland_records", "control_records"}),
            "audit": summarize(audit_state, analysis).to_dict(),
            "audit_state": {k: v.value for k, v in audit_state.items()},
            "rejections": {
                Source.SOFTLAND.value: softland.rejections,
                Source.CONTROL.value: control.rejections,
            },
        }
        args.output.write_text(json.dumps(output_data, indent=2, ensure_ascii=False), encoding="utf-8")
        print(f"\nResults written to {args.output}")

    if args.report:
        report = generate_report(build_report_summary(analysis, audit_state, args.entity))
        print("\n" + "=" * 60)
        print(report.text if report.ok else f"❌ {report.error}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
