"""Narrative audit report generation.

Builds a structured summary of one analysis and asks an OpenAI chat model to
write it up as prose for the entity's management.

Generation failures (no API key, connectivity, quota, API errors) are caught
and returned as an error message; they never propagate to the caller and
never touch reconciliation state.
"""

from dataclasses import dataclass
from typing import List, Mapping, Optional

import openai
from pydantic import BaseModel, Field

from audit.reducer import status_of, summarize
from core.config import get_settings
from core.observability.logging import get_logger
from models.canonical import AnalysisResult, AuditStatus
from reporting.monthly import aggregate_by_month


logger = get_logger(__name__)


SYSTEM_PROMPT = (
    "Eres un auditor contable chileno. Redactas informes breves y formales "
    "en español para la dirección de un colegio."
)

REPORT_INSTRUCTIONS = """Con el siguiente resumen de conciliación entre el libro de compras
de Softland y el registro de Control Presupuestario de {entity_name}, redacta un informe
ejecutivo que incluya:
1. Resumen de la conciliación (registros válidos, coincidencias, faltantes y montos).
2. Estado de la auditoría (confirmados, falsos positivos, pendientes).
3. Proveedores y documentos de mayor monto faltante.
4. Recomendaciones concretas para regularizar el registro de Control.

Montos en pesos chilenos, sin decimales.

Resumen (JSON):
{summary_json}
"""


class MissingDocumentSummary(BaseModel):
    factura: str
    rut: str
    nombre: str
    fecha: str
    monto: int
    estado: str


class MonthSummary(BaseModel):
    month: str
    count: int
    total: int


class ReportSummary(BaseModel):
    """Structured input for the narrative report."""
    entity_name: str
    softland_total: int
    control_total: int
    matched_count: int
    missing_count: int
    missing_amount: int
    verified_count: int
    failed_count: int
    pending_count: int
    real_missing_count: int
    real_missing_amount: int
    monthly: List[MonthSummary] = Field(default_factory=list)
    top_missing: List[MissingDocumentSummary] = Field(default_factory=list)


@dataclass
class NarrativeReport:
    """Prose report, or the error that prevented it."""
    text: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def build_report_summary(
    analysis: AnalysisResult,
    audit_state: Mapping[str, AuditStatus],
    entity_name: str,
    top_n: Optional[int] = None,
) -> ReportSummary:
    """Summarize an analysis for the report model.

    The top-N list ranks missing records by amount, excluding those marked as
    false positives.
    """
    if top_n is None:
        top_n = get_settings().report_top_n

    audit = summarize(audit_state, analysis)
    candidates = [
        r for r in analysis.missing_records
        if status_of(audit_state, r.key) != AuditStatus.FAILED
    ]
    top = sorted(candidates, key=lambda r: r.amount, reverse=True)[:max(top_n, 0)]

    return ReportSummary(
        entity_name=entity_name,
        softland_total=analysis.softland_total,
        control_total=analysis.control_total,
        matched_count=analysis.matched_count,
        missing_count=analysis.missing_count,
        missing_amount=analysis.missing_amount,
        verified_count=audit.verified_count,
        failed_count=audit.failed_count,
        pending_count=audit.pending_count,
        real_missing_count=audit.real_missing_count,
        real_missing_amount=audit.real_missing_amount,
        monthly=[
            MonthSummary(month=month, count=bucket.count, total=bucket.total)
            for month, bucket in aggregate_by_month(analysis.missing_records)
        ],
        top_missing=[
            MissingDocumentSummary(
                factura=r.factura_val,
                rut=r.rut_val,
                nombre=r.nombre_val,
                fecha=r.fecha_val,
                monto=r.amount,
                estado=status_of(audit_state, r.key).value,
            )
            for r in top
        ],
    )


def build_prompt(summary: ReportSummary) -> str:
    return REPORT_INSTRUCTIONS.format(
        entity_name=summary.entity_name,
        summary_json=summary.model_dump_json(indent=2),
    )


def generate_report(
    summary: ReportSummary,
    client: Optional[openai.OpenAI] = None,
    model: Optional[str] = None,
) -> NarrativeReport:
    """Ask the chat model for a narrative report.

    Args:
        summary: Structured analysis summary
        client: OpenAI client; built from OPENAI_API_KEY when omitted
        model: Chat model name (defaults to REPORT_MODEL)

    Returns:
        NarrativeReport with either text or a user-facing error message
    """
    settings = get_settings()
    model = model or settings.report_model

    if client is None:
        if not settings.openai_api_key:
            logger.warning("Report requested without OPENAI_API_KEY")
            return NarrativeReport(error="Error generando informe: OPENAI_API_KEY no está configurada.")
        client = openai.OpenAI(api_key=settings.openai_api_key, timeout=120.0)

    logger.info(
        "Requesting narrative report",
        extra_fields={"model": model, "missing": summary.missing_count},
    )

    try:
        response = client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(summary)},
            ],
            temperature=0.3,
        )
    except openai.RateLimitError as e:
        logger.error(f"Report generation rate limited: {e}")
        return NarrativeReport(error="Error generando informe: cuota del servicio agotada, intente más tarde.")
    except openai.APIConnectionError as e:
        logger.error(f"Report generation connection failed: {e}")
        return NarrativeReport(error="Error generando informe: no se pudo conectar con el servicio.")
    except openai.OpenAIError as e:
        logger.error(f"Report generation failed: {e}")
        return NarrativeReport(error=f"Error generando informe: {e}")

    text = response.choices[0].message.content if response.choices else None
    if not text:
        return NarrativeReport(error="Error generando informe: respuesta vacía del servicio.")
    return NarrativeReport(text=text)
