from contextlib import asynccontextmanager
from pathlib import Path
from datetime import date
from typing import Dict, List, Optional
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, FileResponse
from fastapi.staticfiles import StaticFiles
from models import GENDERS, PatientCreate
from calculations import (
    AGE_GROUPS,
    age_group,
    calculate_age,
    calculate_length_of_stay,
    to_date
)
from database import (
    Database,
    DatabaseError,
    DuplicateProtocolError,
    PatientNotFoundError
)
import config
import logging
import uvicorn

# Configure logging
logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

router = APIRouter()


def get_db(request: Request) -> Database:
    """Shared store handle opened by the application lifespan"""
    return request.app.state.db


def annotate_patient(patient: Dict, today: date) -> Dict:
    """Add computed age and length of stay to a patient row"""
    return {
        **patient,
        "age": calculate_age(patient["date_of_birth"], today),
        "length_of_stay": calculate_length_of_stay(
            patient["admission_date"], patient["discharge_date"]
        ),
    }


def parse_date_field(field: str, value: str) -> date:
    try:
        return to_date(value.strip())
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"Field '{field}' must be a valid date in YYYY-MM-DD format"
        )


def build_statistics(db: Database, today: date) -> Dict:
    """Total, per-gender counts and age-group counts in one response object"""
    total = db.count_patients()
    by_gender = db.count_by_gender()

    age_groups = {group: 0 for group in AGE_GROUPS}
    for date_of_birth in db.get_birth_dates():
        age_groups[age_group(calculate_age(date_of_birth, today))] += 1

    return {
        "total": total,
        "byGender": by_gender,
        "ageGroups": age_groups
    }


@router.get("/")
async def root(request: Request):
    """Serve the registry entry page"""
    html_path = request.app.state.static_dir / "index.html"
    if html_path.exists():
        return FileResponse(html_path)
    else:
        raise HTTPException(status_code=404, detail="Entry page not found")


@router.get("/health")
async def health_check(db: Database = Depends(get_db)):
    """Health check endpoint for monitoring"""
    try:
        db.ping()
        return {
            "status": "healthy",
            "database": "ok",
            "db_path": db.db_path
        }
    except Exception as e:
        logger.error(f"Health check failed: {str(e)}")
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "database": "failed",
                "error": str(e)
            }
        )


@router.post("/api/patients")
async def register_patient(patient: PatientCreate, db: Database = Depends(get_db)):
    """
    Register a patient together with its ICD-10 codes.

    The patient row and all ICD rows are written in one transaction.

    Returns:
        JSON response with success flag, message and the new patient id
    """
    missing = patient.missing_fields()
    if missing:
        raise HTTPException(
            status_code=400,
            detail=f"All required fields must be filled in (missing: {', '.join(missing)})"
        )

    icd_codes = patient.valid_icd_codes()
    if not icd_codes:
        raise HTTPException(status_code=400, detail="At least one ICD-10 code is required")

    gender = patient.gender.strip()
    if gender not in GENDERS:
        raise HTTPException(
            status_code=400,
            detail=f"Gender must be one of: {', '.join(GENDERS)}"
        )

    date_of_birth = parse_date_field("date_of_birth", patient.date_of_birth)
    admission_date = parse_date_field("admission_date", patient.admission_date)
    discharge_date = None
    if patient.discharge_date and patient.discharge_date.strip():
        discharge_date = parse_date_field("discharge_date", patient.discharge_date)
        if discharge_date < admission_date:
            raise HTTPException(
                status_code=400,
                detail="Discharge date cannot be earlier than admission date"
            )

    record = {
        "protocol_number": patient.protocol_number.strip(),
        "name": patient.name.strip(),
        "gender": gender,
        "date_of_birth": date_of_birth.isoformat(),
        "admission_date": admission_date.isoformat(),
        "discharge_date": discharge_date.isoformat() if discharge_date else None,
    }

    try:
        patient_id = db.create_patient(record, [icd.model_dump() for icd in icd_codes])
    except DuplicateProtocolError as e:
        logger.warning(str(e))
        raise HTTPException(status_code=400, detail="Protocol number already exists")
    except DatabaseError as e:
        logger.error(f"Failed to register patient {record['protocol_number']}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

    logger.info(f"Registered patient {record['protocol_number']} (ID: {patient_id}) "
                f"with {len(icd_codes)} ICD code(s)")

    return {
        "success": True,
        "message": "Patient registered successfully",
        "patientId": patient_id
    }


@router.get("/api/patients")
async def list_patients(db: Database = Depends(get_db)) -> List[Dict]:
    """All patients with computed age, length of stay and ICD codes"""
    try:
        today = date.today()
        return [annotate_patient(p, today) for p in db.get_patients()]
    except Exception as e:
        logger.error(f"Error listing patients: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/api/patients/search")
async def search_patients(
    icd_code: Optional[str] = None,
    min_age: Optional[str] = None,
    gender: Optional[str] = None,
    db: Database = Depends(get_db)
):
    """
    Search patients by ICD code substring, minimum age and gender.

    The age filter is applied to the computed ages after the query runs.
    """
    min_age_value = None
    if min_age and min_age.strip():
        try:
            min_age_value = int(min_age)
        except ValueError:
            raise HTTPException(status_code=400, detail="min_age must be an integer")

    try:
        today = date.today()
        rows = db.search_patients(
            icd_code=icd_code.strip() if icd_code else None,
            gender=gender.strip() if gender else None
        )
        patients = [annotate_patient(p, today) for p in rows]
        if min_age_value is not None:
            patients = [p for p in patients if p["age"] >= min_age_value]
        return {"count": len(patients), "patients": patients}
    except Exception as e:
        logger.error(f"Error searching patients: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/api/patients/{protocol_number}")
async def delete_patient(protocol_number: str, db: Database = Depends(get_db)):
    """Delete a patient and, through the cascade, its ICD codes"""
    try:
        db.delete_patient(protocol_number)
    except PatientNotFoundError:
        raise HTTPException(status_code=404, detail="Patient not found")
    except DatabaseError as e:
        logger.error(f"Error deleting patient {protocol_number}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

    logger.info(f"Deleted patient {protocol_number}")
    return {"message": "Patient deleted successfully"}


@router.get("/api/statistics")
async def get_statistics(db: Database = Depends(get_db)):
    """Patient totals by gender and by age group"""
    try:
        return build_statistics(db, date.today())
    except Exception as e:
        logger.error(f"Error computing statistics: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Report malformed request bodies and parameters as client errors"""
    errors = exc.errors()
    details = "; ".join(
        f"{'.'.join(str(loc) for loc in error.get('loc', ()))}: {error.get('msg')}"
        for error in errors
    )
    return JSONResponse(status_code=400, content={"detail": f"Invalid request: {details}"})


def create_app(db_path: Optional[str] = None, static_dir=None) -> FastAPI:
    """
    Build the application.

    The store is opened when the application starts and closed when it stops.
    """
    database = Database(db_path or config.DB_PATH)
    static_path = Path(static_dir) if static_dir is not None else config.STATIC_DIR

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database.connect()
        try:
            yield
        finally:
            database.close()

    app = FastAPI(
        title="Patient Registry",
        description="Patient records with ICD-10 codes, search and statistics",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.db = database
    app.state.static_dir = static_path

    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.include_router(router)

    # Mounted last so API routes take precedence
    if static_path.is_dir():
        app.mount("/", StaticFiles(directory=static_path), name="static")
    else:
        logger.warning(f"Static directory {static_path} not found, serving API only")

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host=config.HOST, port=config.PORT)
