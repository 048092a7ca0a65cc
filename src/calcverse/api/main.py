from datetime import date
from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, field_validator

from calcverse import __version__
from calcverse.calculators import crop_rotation, spay_neuter
from calcverse.calculators.crop_rotation import GardenBed, SoilAmendmentInput
from calcverse.calculators.spay_neuter import SpayNeuterInput
from calcverse.config.logging_config import setup_logging
from calcverse.config.settings import get_settings
from calcverse.engine import EstimationError
from calcverse.services import directory
from calcverse.services.input_validation import parse_number, sanitize_text
from calcverse.api import state
from calcverse.api.state import engine

setup_logging()

app = FastAPI(
    title="Calcverse API",
    description="Rule-driven cost and quantity estimators",
    version=__version__,
)

# Enable CORS for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _clean_number(value):
    if value is None:
        return value
    parsed = parse_number(value)
    if parsed is None:
        raise ValueError("must be a finite number")
    return parsed


def _clean_text(value):
    if isinstance(value, str):
        return sanitize_text(value)
    return value


class SpayNeuterRequest(BaseModel):
    species: str = 'dog'
    gender: str = 'female'
    weight_category: str = '10-25'
    age_in_months: int = 6
    region: str = 'National Average'
    area_type: str = 'suburban'
    clinic_tier: str = 'private-practice'
    is_pregnant_or_in_heat: bool = False
    is_cryptorchid: bool = False
    is_brachycephalic: bool = False
    is_obese: bool = False
    procedure_type: str = 'traditional'
    include_pre_op_bloodwork: bool = False
    include_iv_fluids: bool = False
    include_pain_medication: bool = True
    include_e_collar: bool = True
    include_microchip: bool = False
    include_antibiotics: bool = False
    include_post_op_exam: bool = False
    has_wellness_plan: bool = False
    wellness_plan_reimbursement: float = 150.0
    number_of_pets: int = 1
    calculation_mode: str = 'comprehensive'
    show_recovery_comparison: bool = False

    @field_validator('age_in_months', 'wellness_plan_reimbursement', 'number_of_pets', mode='before')
    @classmethod
    def clean_numbers(cls, value):
        return _clean_number(value)

    @field_validator(
        'species', 'gender', 'weight_category', 'region', 'area_type',
        'clinic_tier', 'procedure_type', 'calculation_mode', mode='before'
    )
    @classmethod
    def clean_text(cls, value):
        return _clean_text(value)

    def to_input(self) -> SpayNeuterInput:
        return SpayNeuterInput(**self.model_dump())


class SoilAmendmentRequest(BaseModel):
    amendment: str = 'compost'
    area_sqft: float = 100.0

    @field_validator('area_sqft', mode='before')
    @classmethod
    def clean_area(cls, value):
        return _clean_number(value)

    @field_validator('amendment', mode='before')
    @classmethod
    def clean_amendment(cls, value):
        return _clean_text(value)


class SuccessionRequest(BaseModel):
    crop: str
    start_date: date

    @field_validator('crop', mode='before')
    @classmethod
    def clean_crop(cls, value):
        return _clean_text(value)


@app.get("/")
async def root():
    return {"status": "online", "message": "Calcverse API Active"}


@app.get("/system/status")
async def get_status():
    settings = get_settings()
    return {
        "engine_active": True,
        "version": __version__,
        "rules_dir": str(settings.rules_dir),
        "rule_tables": engine.tables.names(),
        "rules_count": {
            "spay_neuter": len(spay_neuter.get_definition().rules.rules),
            "soil_amendment": len(crop_rotation.get_soil_definition().rules.rules),
        },
    }


@app.post("/estimate/spay-neuter")
async def estimate_spay_neuter(req: SpayNeuterRequest):
    try:
        result = spay_neuter.estimate_spay_neuter(req.to_input(), engine=engine)
    except EstimationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return result.to_display_dict()


@app.post("/compare/spay-neuter/{dimension}")
async def compare_spay_neuter(dimension: str, req: SpayNeuterRequest):
    try:
        rows = spay_neuter.compare(dimension, req.to_input(), engine=engine)
    except EstimationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {
        "dimension": dimension,
        "rows": [
            {"value": r.value, "label": r.label, "total": r.total, "notes": list(r.notes), **r.details}
            for r in rows
        ],
    }


@app.post("/estimate/soil-amendment")
async def estimate_soil_amendment(req: SoilAmendmentRequest):
    try:
        result = crop_rotation.estimate_soil_amendment(
            SoilAmendmentInput(amendment=req.amendment, area_sqft=req.area_sqft), engine=engine
        )
    except EstimationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return result.to_display_dict()


@app.get("/crop-rotation/schedule")
async def get_rotation_schedule(years: int = 4, beds: int = Query(4, ge=1, le=20)):
    bed_list = [GardenBed(i, f"Bed {i}") for i in range(1, beds + 1)]
    try:
        schedule = crop_rotation.rotation_schedule(years, bed_list, tables=engine.tables)
    except EstimationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return jsonable_encoder(schedule)


@app.post("/crop-rotation/succession")
async def get_succession_dates(req: SuccessionRequest):
    try:
        plantings = crop_rotation.succession_dates(req.crop, req.start_date, tables=engine.tables)
    except EstimationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return jsonable_encoder(plantings)


@app.get("/crop-rotation/families/{family}")
async def get_plant_family(family: str):
    try:
        return crop_rotation.plant_family(sanitize_text(family), tables=engine.tables)
    except EstimationError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.get("/crop-rotation/plants/{plant}")
async def get_family_for_plant(plant: str):
    try:
        return crop_rotation.family_for_plant(sanitize_text(plant), tables=engine.tables)
    except EstimationError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.get("/crop-rotation/cover-crops")
async def get_cover_crops():
    return crop_rotation.cover_crops(tables=engine.tables)


@app.get("/calculators")
async def list_calculators(
    search: Optional[str] = None,
    category: str = directory.ALL,
    difficulty: str = directory.ALL,
    popular_only: bool = False,
    grouped: bool = False,
):
    catalog = state.catalog
    filtered = directory.filter_calculators(
        catalog,
        query=sanitize_text(search) if search else '',
        category=category,
        difficulty=difficulty,
        popular_only=popular_only,
    )
    if not grouped:
        return {"count": len(filtered), "total": len(catalog), "calculators": filtered.to_dict(orient="records")}

    groups = directory.group_by_category(filtered, state.category_names)
    return {
        "count": len(filtered),
        "total": len(catalog),
        "groups": [
            {"category": name, "calculators": group.to_dict(orient="records")}
            for name, group in groups
        ],
    }
