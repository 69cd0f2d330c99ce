from typing import List, Optional
from pydantic import BaseModel

GENDERS = ("male", "female")

REQUIRED_FIELDS = ("protocol_number", "name", "gender", "date_of_birth", "admission_date")


class IcdCode(BaseModel):
    code: Optional[str] = None
    description: Optional[str] = ""


class PatientCreate(BaseModel):
    """
    Registration body.

    Every field is optional at the schema level so that the handler can
    report missing values with its own messages.
    """
    protocol_number: Optional[str] = None
    name: Optional[str] = None
    gender: Optional[str] = None
    date_of_birth: Optional[str] = None
    admission_date: Optional[str] = None
    discharge_date: Optional[str] = None
    icd_codes: Optional[List[IcdCode]] = None

    def missing_fields(self) -> List[str]:
        return [
            field for field in REQUIRED_FIELDS
            if not (getattr(self, field) or "").strip()
        ]

    def valid_icd_codes(self) -> List[IcdCode]:
        """ICD entries with a non-blank code, codes stripped"""
        return [
            IcdCode(code=icd.code.strip(), description=icd.description or "")
            for icd in self.icd_codes or []
            if icd.code and icd.code.strip()
        ]
