#!/usr/bin/env python3
"""
Seed a running patient registry with sample registrations.

Posts each sample patient to the registration endpoint and prints a summary.
Duplicate protocol numbers are reported as failures, so the script can be run
again safely against the same database.
"""

import requests
import json
import sys
import time
from typing import Dict, Tuple

# Configuration
BASE_URL = "http://localhost:5000"

SAMPLE_PATIENTS = [
    {
        "protocol_number": "P-001",
        "name": "Agim Krasniqi",
        "gender": "male",
        "date_of_birth": "1960-05-01",
        "admission_date": "2024-06-01",
        "icd_codes": [{"code": "J18.9", "description": "Pneumonia, unspecified organism"}]
    },
    {
        "protocol_number": "P-002",
        "name": "Drita Berisha",
        "gender": "female",
        "date_of_birth": "1985-11-23",
        "admission_date": "2024-06-03",
        "discharge_date": "2024-06-10",
        "icd_codes": [
            {"code": "K35.8", "description": "Acute appendicitis, other and unspecified"},
            {"code": "E11.9"}
        ]
    },
    {
        "protocol_number": "P-003",
        "name": "Arben Gashi",
        "gender": "male",
        "date_of_birth": "2012-02-14",
        "admission_date": "2024-07-15",
        "discharge_date": "2024-07-17",
        "icd_codes": [{"code": "J45.9", "description": "Asthma, unspecified"}]
    },
    {
        "protocol_number": "P-004",
        "name": "Vjollca Hoxha",
        "gender": "female",
        "date_of_birth": "1948-08-30",
        "admission_date": "2024-08-02",
        "icd_codes": [
            {"code": "I50.0", "description": "Congestive heart failure"},
            {"code": "I10", "description": "Essential (primary) hypertension"}
        ]
    }
]


def check_server_health(base_url: str) -> bool:
    """Check if the registry server is running and healthy."""
    try:
        response = requests.get(f"{base_url}/health", timeout=5)
        if response.status_code == 200:
            data = response.json()
            print(f"✅ Server is healthy: {data.get('status')}")
            return True
        else:
            print(f"⚠️  Server returned status {response.status_code}")
            return False
    except requests.exceptions.ConnectionError:
        print(f"❌ Cannot connect to server at {base_url}")
        return False
    except requests.exceptions.RequestException as e:
        print(f"❌ Error checking server health: {str(e)}")
        return False


def register_patient(base_url: str, patient: Dict) -> Tuple[bool, Dict]:
    """
    Send a single registration request.

    Returns:
        (success: bool, response_data: dict)
    """
    try:
        response = requests.post(f"{base_url}/api/patients", json=patient, timeout=10)
        return response.status_code == 200, response.json()
    except requests.exceptions.RequestException as e:
        return False, {"detail": str(e)}


def seed(base_url: str, delay: float = 0.0, verbose: bool = True) -> Dict:
    if not check_server_health(base_url):
        print("\n❌ Server health check failed. Exiting.")
        sys.exit(1)

    print(f"\nRegistering {len(SAMPLE_PATIENTS)} sample patients...")
    print("-" * 60)

    results = {"success": 0, "failed": 0}

    for i, patient in enumerate(SAMPLE_PATIENTS, 1):
        success, data = register_patient(base_url, patient)
        if success:
            results["success"] += 1
            if verbose:
                print(f"[{i}] ✅ {patient['protocol_number']} registered (ID: {data.get('patientId')})")
        else:
            results["failed"] += 1
            if verbose:
                print(f"[{i}] ❌ {patient['protocol_number']}: {data.get('detail', 'Unknown error')}")

        if delay and i < len(SAMPLE_PATIENTS):
            time.sleep(delay)

    print("-" * 60)
    print(f"✅ Registered: {results['success']}  ❌ Failed: {results['failed']}")

    stats = requests.get(f"{base_url}/api/statistics", timeout=10)
    if stats.ok:
        print("\nStatistics:")
        print(json.dumps(stats.json(), indent=2))

    return results


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Seed the patient registry with sample data")
    parser.add_argument(
        "--url",
        default=BASE_URL,
        help=f"Base URL of the registry (default: {BASE_URL})"
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=0.0,
        help="Delay between requests in seconds (default: 0)"
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress per-patient output"
    )

    args = parser.parse_args()
    seed(args.url.rstrip("/"), delay=args.delay, verbose=not args.quiet)
