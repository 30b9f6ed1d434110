import logging
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from . import __version__
from .config import Settings
from .exceptions import DataImportError, ImportInProgressError, StepMismatchError, UnknownTechniqueError
from .logging_config import configure_logging
from .models import ASSET_TYPE_LABELS, Technique, WizardState
from .report import EXPORTERS, ReportingService, snapshot_to_dict
from .risk import calculate_risk, risk_level
from .schemas import (
    AssetRequest,
    AssetResponse,
    AssetTypeResponse,
    HealthResponse,
    ImportResultResponse,
    ImportRow,
    MitigationsResponse,
    ReportResponse,
    ReportRowResponse,
    RiskCalculationRequest,
    RiskCalculationResponse,
    RiskScoreResponse,
    ScoreUpdateRequest,
    StepViewResponse,
    TechniqueResponse,
    TechniqueSelectRequest,
    WizardStateResponse,
)
from .importer import CatalogImporter
from .storage import AssessmentRepository, TechniqueRepository
from .views import render_step
from .wizard import WizardController

logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "health", "description": "Service health and info."},
    {"name": "catalog", "description": "Tactics, techniques and mitigations reference data."},
    {"name": "risk", "description": "Risk aggregation."},
    {"name": "assessments", "description": "Assessment wizard sessions."},
    {"name": "reports", "description": "Mitigation reports and exports."},
]

router = APIRouter()


def get_catalog(request: Request) -> TechniqueRepository:
    return request.app.state.catalog


def get_importer(request: Request) -> CatalogImporter:
    return request.app.state.importer


def get_sessions(request: Request) -> AssessmentRepository:
    return request.app.state.sessions


def get_session(
    assessment_id: str, sessions: AssessmentRepository = Depends(get_sessions)
) -> Tuple[str, WizardController]:
    controller = sessions.get(assessment_id)
    if controller is None:
        raise HTTPException(status_code=404, detail="Assessment not found")
    return assessment_id, controller


def _technique_response(t: Technique) -> TechniqueResponse:
    return TechniqueResponse(id=t.id, name=t.name, tactic=t.tactic, description=t.description)


def _state_response(assessment_id: str, state: WizardState) -> WizardStateResponse:
    return WizardStateResponse(
        id=assessment_id,
        step=int(state.step),
        step_name=state.step.name,
        asset=AssetResponse(name=state.asset.name, type=state.asset.type),
        selected=[_technique_response(t) for t in state.selected],
        scores=[
            RiskScoreResponse(technique_id=s.technique_id, score=s.score, asset=s.asset) for s in state.scores
        ],
        can_advance=state.can_advance,
        can_go_back=state.can_go_back,
        total_risk=state.total_risk,
    )


def _apply(assessment_id: str, action) -> WizardStateResponse:
    """Run a wizard command and translate domain errors into HTTP errors."""
    try:
        state = action()
    except UnknownTechniqueError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except StepMismatchError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return _state_response(assessment_id, state)


def _import_result(count: int, catalog: TechniqueRepository) -> ImportResultResponse:
    return ImportResultResponse(imported=count, tactics=catalog.get_tactics())


# PUBLIC_INTERFACE
@router.get("/", response_model=HealthResponse, summary="Health check", tags=["health"])
def health_check(catalog: TechniqueRepository = Depends(get_catalog)):
    """
    Health Check
    Returns a simple message indicating the service is running.
    """
    return HealthResponse(message="Healthy", catalog_loaded=catalog.is_loaded)


# Catalog endpoints
# PUBLIC_INTERFACE
@router.get(
    "/catalog/tactics",
    response_model=List[str],
    summary="List tactics",
    description="List distinct tactic names in first-seen order.",
    tags=["catalog"],
)
def list_tactics(catalog: TechniqueRepository = Depends(get_catalog)):
    """List tactics."""
    return catalog.get_tactics()


# PUBLIC_INTERFACE
@router.get(
    "/catalog/tactics/{tactic}/techniques",
    response_model=List[TechniqueResponse],
    summary="List techniques of a tactic",
    description="List techniques grouped under a tactic. Unknown tactics yield an empty list.",
    tags=["catalog"],
)
def list_techniques_by_tactic(tactic: str, catalog: TechniqueRepository = Depends(get_catalog)):
    """
    List techniques for a tactic.

    Parameters:
    - tactic: tactic name

    Returns a list of TechniqueResponse.
    """
    return [_technique_response(t) for t in catalog.get_techniques_by_tactic(tactic)]


# PUBLIC_INTERFACE
@router.get(
    "/catalog/techniques/{technique_id}/mitigations",
    response_model=MitigationsResponse,
    summary="Get mitigations",
    description="Get the recommended mitigations of a technique.",
    tags=["catalog"],
)
def get_mitigations(technique_id: str, catalog: TechniqueRepository = Depends(get_catalog)):
    """Return mitigation names for a technique, empty if none are known."""
    return MitigationsResponse(technique_id=technique_id, mitigations=catalog.get_mitigations(technique_id))


# PUBLIC_INTERFACE
@router.post(
    "/catalog/import",
    response_model=ImportResultResponse,
    summary="Import technique rows",
    description="Replace the catalog with pre-parsed rows.",
    tags=["catalog"],
)
def import_rows(
    rows: List[dict],
    importer: CatalogImporter = Depends(get_importer),
    catalog: TechniqueRepository = Depends(get_catalog),
):
    """
    Import technique rows.

    Parameters:
    - rows: list of {techniqueId, techniqueName, tactic, description?, mitigations?}

    Returns:
    - ImportResultResponse. A rejected import (422) leaves the current catalog untouched.
    """
    try:
        count = importer.import_rows(rows)
    except ImportInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except DataImportError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return _import_result(count, catalog)


# PUBLIC_INTERFACE
@router.post(
    "/catalog/import/file",
    response_model=ImportResultResponse,
    summary="Import spreadsheet",
    description="Replace the catalog with the contents of an Excel file (.xlsx or .xls).",
    tags=["catalog"],
)
async def import_file(
    file: UploadFile = File(..., description="Excel workbook."),
    importer: CatalogImporter = Depends(get_importer),
    catalog: TechniqueRepository = Depends(get_catalog),
):
    """
    Import an Excel workbook.

    Expected columns: Technique ID, Technique Name, Tactic, Description, Mitigations.
    Only one import runs at a time; a concurrent upload gets 409.
    Uploads larger than the configured limit are rejected with 422.
    """
    limit = importer.max_bytes
    # one byte past the limit is enough to reject an oversized upload
    content = await file.read(limit + 1) if limit is not None else await file.read()
    try:
        count = await importer.import_file_async(file.filename or "", content)
    except ImportInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except DataImportError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return _import_result(count, catalog)


# PUBLIC_INTERFACE
@router.post(
    "/catalog/sample",
    response_model=ImportResultResponse,
    summary="Load sample data",
    description="Replace the catalog with the bundled sample ICS technique data.",
    tags=["catalog"],
)
def load_sample(
    request: Request,
    importer: CatalogImporter = Depends(get_importer),
    catalog: TechniqueRepository = Depends(get_catalog),
):
    """Load the seed dataset."""
    try:
        count = importer.load_sample(request.app.state.settings.seed_path)
    except ImportInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except DataImportError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return _import_result(count, catalog)


# PUBLIC_INTERFACE
@router.get(
    "/catalog/export",
    response_model=List[ImportRow],
    summary="Export catalog rows",
    description="Dump the catalog as import rows.",
    tags=["catalog"],
)
def export_rows(catalog: TechniqueRepository = Depends(get_catalog)):
    """Export catalog rows; re-importing them reproduces the same catalog."""
    return [
        ImportRow(
            technique_id=r.technique_id,
            technique_name=r.technique_name,
            tactic=r.tactic,
            description=r.description,
            mitigations=r.mitigations,
        )
        for r in catalog.export_rows()
    ]


# PUBLIC_INTERFACE
@router.get(
    "/asset-types",
    response_model=List[AssetTypeResponse],
    summary="List asset types",
    description="List ICS asset categories available in step 1.",
    tags=["assessments"],
)
def list_asset_types():
    """List asset categories."""
    return [AssetTypeResponse(value=k, label=v) for k, v in ASSET_TYPE_LABELS.items()]


# PUBLIC_INTERFACE
@router.post(
    "/risk/calculate",
    response_model=RiskCalculationResponse,
    summary="Calculate risk",
    description="Aggregate scores into a total risk; weighted when a parallel weight list is given.",
    tags=["risk"],
)
def calculate(payload: RiskCalculationRequest):
    """
    Calculate aggregated risk.

    Weights whose length differs from the scores are ignored and the plain mean is used.
    Non-finite scores or weights are rejected with 422.
    """
    try:
        total = calculate_risk(payload.scores, payload.weights)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    weighted = (
        payload.weights is not None
        and len(payload.weights) == len(payload.scores)
        and sum(payload.weights) != 0
    )
    return RiskCalculationResponse(total_risk=total, level=risk_level(total).value, weighted=weighted)


# Assessment endpoints
# PUBLIC_INTERFACE
@router.post(
    "/assessments",
    response_model=WizardStateResponse,
    summary="Start assessment",
    description="Start a new assessment wizard at the Asset Input step.",
    tags=["assessments"],
)
def create_assessment(
    catalog: TechniqueRepository = Depends(get_catalog),
    sessions: AssessmentRepository = Depends(get_sessions),
):
    """Create a wizard session."""
    controller = WizardController(catalog)
    sid = sessions.add(controller)
    return _state_response(sid, controller.state)


# PUBLIC_INTERFACE
@router.get(
    "/assessments/{assessment_id}",
    response_model=WizardStateResponse,
    summary="Get assessment",
    tags=["assessments"],
)
def get_assessment(session: Tuple[str, WizardController] = Depends(get_session)):
    """Return the current wizard state."""
    sid, controller = session
    return _state_response(sid, controller.state)


# PUBLIC_INTERFACE
@router.delete("/assessments/{assessment_id}", summary="Delete assessment", tags=["assessments"])
def delete_assessment(assessment_id: str, sessions: AssessmentRepository = Depends(get_sessions)):
    """Delete a wizard session."""
    if not sessions.delete(assessment_id):
        raise HTTPException(status_code=404, detail="Assessment not found")
    return {"deleted": True}


# PUBLIC_INTERFACE
@router.put(
    "/assessments/{assessment_id}/asset",
    response_model=WizardStateResponse,
    summary="Set asset",
    description="Set the asset name and type (Asset Input step only).",
    tags=["assessments"],
)
def set_asset(payload: AssetRequest, session: Tuple[str, WizardController] = Depends(get_session)):
    """Set asset data."""
    sid, controller = session
    return _apply(sid, lambda: controller.set_asset(payload.name, payload.type))


# PUBLIC_INTERFACE
@router.post(
    "/assessments/{assessment_id}/techniques",
    response_model=WizardStateResponse,
    summary="Select technique",
    description="Add a technique to the assessment; a default score of 5 is recorded for it.",
    tags=["assessments"],
)
def select_technique(
    payload: TechniqueSelectRequest, session: Tuple[str, WizardController] = Depends(get_session)
):
    """Select a technique (Technique Selection step only)."""
    sid, controller = session
    return _apply(sid, lambda: controller.select_technique(payload.technique_id))


# PUBLIC_INTERFACE
@router.delete(
    "/assessments/{assessment_id}/techniques/{technique_id}",
    response_model=WizardStateResponse,
    summary="Deselect technique",
    description="Remove a technique and its score from the assessment.",
    tags=["assessments"],
)
def deselect_technique(technique_id: str, session: Tuple[str, WizardController] = Depends(get_session)):
    """Deselect a technique (Technique Selection step only)."""
    sid, controller = session
    return _apply(sid, lambda: controller.deselect_technique(technique_id))


# PUBLIC_INTERFACE
@router.put(
    "/assessments/{assessment_id}/scores/{technique_id}",
    response_model=WizardStateResponse,
    summary="Set risk score",
    description="Set a technique risk score; values outside 1-10 are clamped.",
    tags=["assessments"],
)
def set_score(
    technique_id: str,
    payload: ScoreUpdateRequest,
    session: Tuple[str, WizardController] = Depends(get_session),
):
    """Set a risk score (Risk Scoring step only)."""
    sid, controller = session
    return _apply(sid, lambda: controller.set_score(technique_id, payload.score))


# PUBLIC_INTERFACE
@router.post(
    "/assessments/{assessment_id}/next",
    response_model=WizardStateResponse,
    summary="Next step",
    description="Advance one step when the current step is complete; otherwise the state is unchanged.",
    tags=["assessments"],
)
def next_step(session: Tuple[str, WizardController] = Depends(get_session)):
    """Advance the wizard."""
    sid, controller = session
    return _apply(sid, controller.next)


# PUBLIC_INTERFACE
@router.post(
    "/assessments/{assessment_id}/previous",
    response_model=WizardStateResponse,
    summary="Previous step",
    tags=["assessments"],
)
def previous_step(session: Tuple[str, WizardController] = Depends(get_session)):
    """Go back one step."""
    sid, controller = session
    return _apply(sid, controller.previous)


# PUBLIC_INTERFACE
@router.post(
    "/assessments/{assessment_id}/reset",
    response_model=WizardStateResponse,
    summary="Reset assessment",
    tags=["assessments"],
)
def reset_assessment(session: Tuple[str, WizardController] = Depends(get_session)):
    """Clear the wizard back to an empty Asset Input step."""
    sid, controller = session
    return _apply(sid, controller.reset)


# PUBLIC_INTERFACE
@router.get(
    "/assessments/{assessment_id}/view",
    response_model=StepViewResponse,
    summary="Render current step",
    description="Return the view model of the current wizard step.",
    tags=["assessments"],
)
def render_view(
    tactic: Optional[str] = Query(default=None, description="Tactic whose techniques to list (step 2)."),
    session: Tuple[str, WizardController] = Depends(get_session),
):
    """Render the current step."""
    sid, controller = session
    view = render_step(controller.state, controller.repository, tactic=tactic)
    return StepViewResponse(id=sid, **view)


# Reports endpoints
# PUBLIC_INTERFACE
@router.get(
    "/assessments/{assessment_id}/report",
    response_model=ReportResponse,
    summary="Generate report",
    description="Generate the mitigation report of a completed assessment.",
    tags=["reports"],
)
def generate_report(session: Tuple[str, WizardController] = Depends(get_session)):
    """
    Generate the mitigation report.

    Returns 409 until the wizard has reached the Report step.
    """
    _, controller = session
    try:
        rep = ReportingService(controller.repository).generate(controller.state)
    except StepMismatchError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return ReportResponse(
        snapshot=snapshot_to_dict(rep.snapshot),
        total_level=rep.total_level,
        distribution=rep.distribution,
        rows=[
            ReportRowResponse(
                technique=_technique_response(r.technique),
                score=r.score,
                level=r.level,
                mitigations=r.mitigations,
            )
            for r in rep.rows
        ],
        recommendations=rep.recommendations,
    )


# PUBLIC_INTERFACE
@router.get(
    "/assessments/{assessment_id}/report/export",
    summary="Export report",
    description="Export the mitigation report as JSON or an Excel workbook.",
    tags=["reports"],
)
def export_report(
    fmt: str = Query(default="json", alias="format", description="Export format: json or xlsx."),
    session: Tuple[str, WizardController] = Depends(get_session),
):
    """Export the report in the requested format."""
    sid, controller = session
    exporter = EXPORTERS.get(fmt.lower())
    if exporter is None:
        raise HTTPException(status_code=400, detail=f"Unsupported export format: {fmt}")
    try:
        rep = ReportingService(controller.repository).generate(controller.state)
    except StepMismatchError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    logger.info("Exporting report for %s as %s", sid, exporter.extension)
    return Response(
        content=exporter.export(rep),
        media_type=exporter.media_type,
        headers={"Content-Disposition": f'attachment; filename="risk-report-{sid}.{exporter.extension}"'},
    )


# PUBLIC_INTERFACE
def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application with its own catalog, importer and session store.

    Parameters:
    - settings: Settings; read from the environment when omitted.
    """
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="ICS Cyber Risk Assessment",
        description="MITRE ATT&CK risk assessment wizard for ICS assets: asset input, technique selection, risk scoring and mitigation reports.",
        version=__version__,
        openapi_tags=openapi_tags,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.allowed_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # In-memory repositories (modular, replaceable later)
    catalog = TechniqueRepository()
    app.state.settings = settings
    app.state.catalog = catalog
    app.state.importer = CatalogImporter(catalog, max_bytes=settings.max_import_bytes)
    app.state.sessions = AssessmentRepository(max_sessions=settings.max_sessions or None)

    if settings.seed_on_startup:
        try:
            app.state.importer.load_sample(settings.seed_path)
        except DataImportError:
            # An empty catalog is still usable; data can be imported later
            logger.exception("Could not load seed data")

    app.include_router(router)
    return app


app = create_app()
