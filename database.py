import sqlite3
from typing import List, Dict, Optional, Iterable
import logging

logger = logging.getLogger(__name__)


class DatabaseError(Exception):
    """Custom exception for patient store errors"""
    pass


class DuplicateProtocolError(DatabaseError):
    """Raised when a protocol number is already registered"""
    pass


class PatientNotFoundError(DatabaseError):
    """Raised when no patient matches a protocol number"""
    pass


class Database:
    def __init__(self, db_path: str = "patients.db"):
        self.db_path = db_path
        self.conn: Optional[sqlite3.Connection] = None

    def connect(self):
        """Open the shared connection and make sure the schema exists"""
        if self.conn is not None:
            return
        # Handlers may run on worker threads; access is never concurrent.
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self.init_database()
        logger.info(f"Connected to patient database at {self.db_path}")

    def close(self):
        if self.conn is not None:
            self.conn.close()
            self.conn = None
            logger.info("Patient database connection closed")

    def _cursor(self) -> sqlite3.Cursor:
        if self.conn is None:
            raise DatabaseError("Database is not connected")
        return self.conn.cursor()

    def init_database(self):
        """Initialize SQLite database with schema"""
        cursor = self._cursor()

        # Patients table
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS patients (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                protocol_number TEXT UNIQUE NOT NULL,
                name TEXT NOT NULL,
                gender TEXT NOT NULL,
                date_of_birth DATE NOT NULL,
                admission_date DATE NOT NULL,
                discharge_date DATE,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # ICD-10 codes, one row per diagnosis
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS patient_icd_codes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                patient_id INTEGER NOT NULL,
                icd_code TEXT NOT NULL,
                description TEXT DEFAULT '',
                FOREIGN KEY (patient_id) REFERENCES patients(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_patient_icd_codes_patient
            ON patient_icd_codes (patient_id)
        """)

        self.conn.commit()
        logger.info("Database initialized")

    def create_patient(self, patient: Dict, icd_codes: Iterable[Dict]) -> int:
        """
        Insert a patient and its ICD codes as one transaction.

        Args:
            patient: protocol_number, name, gender, date_of_birth,
                admission_date and optional discharge_date
            icd_codes: dicts with "code" and optional "description"

        Returns:
            The new patient id

        Raises:
            DuplicateProtocolError: If the protocol number already exists
            DatabaseError: On any other storage failure; nothing is kept
        """
        cursor = self._cursor()
        try:
            with self.conn:
                cursor.execute("""
                    INSERT INTO patients (protocol_number, name, gender, date_of_birth,
                                          admission_date, discharge_date)
                    VALUES (?, ?, ?, ?, ?, ?)
                """, (
                    patient["protocol_number"],
                    patient["name"],
                    patient["gender"],
                    patient["date_of_birth"],
                    patient["admission_date"],
                    patient.get("discharge_date") or None,
                ))
                patient_id = cursor.lastrowid

                cursor.executemany("""
                    INSERT INTO patient_icd_codes (patient_id, icd_code, description)
                    VALUES (?, ?, ?)
                """, [
                    (patient_id, icd["code"], icd.get("description") or "")
                    for icd in icd_codes
                ])
        except sqlite3.IntegrityError as e:
            if "UNIQUE" in str(e) and "protocol_number" in str(e):
                raise DuplicateProtocolError(
                    f"Protocol number {patient['protocol_number']} already exists"
                ) from e
            raise DatabaseError(str(e)) from e
        except sqlite3.Error as e:
            raise DatabaseError(str(e)) from e

        return patient_id

    def _attach_icd_codes(self, patients: List[Dict]) -> List[Dict]:
        """Add the list of ICD codes to each patient dict"""
        if not patients:
            return patients

        cursor = self._cursor()
        ids = [p["id"] for p in patients]
        placeholders = ",".join("?" for _ in ids)
        cursor.execute(f"""
            SELECT patient_id, icd_code FROM patient_icd_codes
            WHERE patient_id IN ({placeholders})
            ORDER BY id
        """, ids)

        codes: Dict[int, List[str]] = {patient_id: [] for patient_id in ids}
        for row in cursor.fetchall():
            codes[row["patient_id"]].append(row["icd_code"])

        for patient in patients:
            patient["icd_codes"] = codes[patient["id"]]
        return patients

    def get_patients(self) -> List[Dict]:
        """All patients, most recently registered first"""
        try:
            cursor = self._cursor()
            cursor.execute("""
                SELECT * FROM patients ORDER BY created_at DESC, id DESC
            """)
            patients = [dict(row) for row in cursor.fetchall()]
            return self._attach_icd_codes(patients)
        except sqlite3.Error as e:
            raise DatabaseError(str(e)) from e

    def search_patients(self, icd_code: Optional[str] = None,
                        gender: Optional[str] = None) -> List[Dict]:
        """
        Patients having an ICD code containing icd_code and/or the given gender.

        The substring match uses LIKE, so it is case-insensitive for ASCII.
        """
        sql = "SELECT * FROM patients WHERE 1=1"
        params: List = []

        if icd_code:
            escaped = (icd_code.replace("\\", "\\\\")
                       .replace("%", "\\%")
                       .replace("_", "\\_"))
            sql += """
                AND id IN (
                    SELECT patient_id FROM patient_icd_codes
                    WHERE icd_code LIKE ? ESCAPE '\\'
                )
            """
            params.append(f"%{escaped}%")
        if gender:
            sql += " AND gender = ?"
            params.append(gender)
        sql += " ORDER BY created_at DESC, id DESC"

        try:
            cursor = self._cursor()
            cursor.execute(sql, params)
            patients = [dict(row) for row in cursor.fetchall()]
            return self._attach_icd_codes(patients)
        except sqlite3.Error as e:
            raise DatabaseError(str(e)) from e

    def delete_patient(self, protocol_number: str):
        """
        Delete a patient; its ICD codes go with it through the cascade.

        Raises:
            PatientNotFoundError: If no patient has this protocol number
        """
        cursor = self._cursor()
        try:
            with self.conn:
                cursor.execute(
                    "DELETE FROM patients WHERE protocol_number = ?",
                    (protocol_number,)
                )
        except sqlite3.Error as e:
            raise DatabaseError(str(e)) from e

        if cursor.rowcount == 0:
            raise PatientNotFoundError(f"Patient {protocol_number} not found")

    def count_patients(self) -> int:
        cursor = self._cursor()
        cursor.execute("SELECT COUNT(*) AS total FROM patients")
        return cursor.fetchone()["total"]

    def count_by_gender(self) -> List[Dict]:
        cursor = self._cursor()
        cursor.execute("""
            SELECT gender, COUNT(*) AS count FROM patients
            GROUP BY gender ORDER BY gender
        """)
        return [dict(row) for row in cursor.fetchall()]

    def get_birth_dates(self) -> List[str]:
        cursor = self._cursor()
        cursor.execute("SELECT date_of_birth FROM patients")
        return [row["date_of_birth"] for row in cursor.fetchall()]

    def count_icd_codes(self, patient_id: Optional[int] = None) -> int:
        """Number of ICD rows, for one patient or in total"""
        cursor = self._cursor()
        if patient_id is None:
            cursor.execute("SELECT COUNT(*) AS total FROM patient_icd_codes")
        else:
            cursor.execute(
                "SELECT COUNT(*) AS total FROM patient_icd_codes WHERE patient_id = ?",
                (patient_id,)
            )
        return cursor.fetchone()["total"]

    def ping(self):
        """Run a trivial query to check the connection"""
        self._cursor().execute("SELECT 1").fetchone()
