from typing import TypedDict, Optional, List, Dict, Any, Union

class CallSession(TypedDict, total=False):
    """Lead data accumulated over one call."""
    call_id: str
    phone_number: str
    first_name: str
    last_name: str
    email: str
    company: str
    industry: str
    employee_count: Union[str, int]
    pain_point: str
    timeline: str
    budget: str
    qualification_score: float       # 0-10
    call_outcome: str
    next_steps: str
    notes: str
    duration: float                  # seconds
    specific_needs: str

class CallEndState(TypedDict, total=False):
    """State shape for the end-of-call workflow."""
    call_id: str
    session: Dict[str, Any]          # snapshot removed from the call store
    ended: Dict[str, Any]            # duration / summary / extracted from the end event
    priority: str                    # "HIGH" | "MEDIUM" | "LOW"
    should_notify: bool
    notified: bool
    errors: List[str]

# Platform (camelCase) parameter names -> session keys
FIELD_MAP = {
    "phoneNumber": "phone_number",
    "firstName": "first_name",
    "lastName": "last_name",
    "email": "email",
    "company": "company",
    "industry": "industry",
    "employeeCount": "employee_count",
    "painPoint": "pain_point",
    "timeline": "timeline",
    "budget": "budget",
    "qualificationScore": "qualification_score",
    "callOutcome": "call_outcome",
    "nextSteps": "next_steps",
    "notes": "notes",
    "specificNeeds": "specific_needs",
}

def to_session_fields(params: Optional[Dict[str, Any]], keys: Optional[List[str]] = None) -> Dict[str, Any]:
    """Translate platform parameters to session fields, skipping unknown keys and nulls."""
    if not isinstance(params, dict):
        return {}

    fields = {}
    for wire_name, field in FIELD_MAP.items():
        if keys is not None and field not in keys:
            continue
        value = params.get(wire_name)
        if value is not None:
            fields[field] = value
    return fields
