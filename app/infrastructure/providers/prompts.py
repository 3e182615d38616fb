"""
Built-in prompt sets for the multimodal vision call.

Criteria set A focuses on plate extraction, criteria set B on vehicle
condition. Both are evaluated by one call that must answer with a single
JSON object holding ``analysisA`` and ``analysisB``.
"""

PLATE_FOCUS_CRITERIA = """\
[CRITERIA SET A - License Plate Extraction]
1. Determine if it's a vehicle.
2. If NOT, status: "NOT_VEHICLE", message: "차량 사진이 아닙니다."
3. If IS, extract Korean license plate.
4. If plate is missing/unreadable, status: "VEHICLE_NO_PLATE", message: "번호판을 찾을 수 없습니다."
5. If plate found, status: "SUCCESS", message: "성공"."""

DAMAGE_FOCUS_CRITERIA = """\
[CRITERIA SET B - Vehicle Condition Analysis]
Step 1: Determine whether the image contains a vehicle. (Cars, trucks, buses, motorcycles, parts like plates, wheels, bumpers).
- If no vehicle: status: "EXCEPT", message: "차량 사진이 아닙니다.", plate: null.
Step 2: If vehicle, check for serious damage.
- If serious damage: status: "ISSUE", message: "차량 파손 여부가 확인됩니다."
- If no serious damage: status: "SUCCESS", message: "정상 차량입니다."
Step 3: Extract license plate into 'plate' field if visible."""

RESPONSE_FORMAT = """\
RETURN JSON FORMAT ONLY:
{
  "analysisA": { "status": "...", "plate": "...", "message": "..." },
  "analysisB": { "status": "...", "plate": "...", "message": "..." }
}"""

USER_INSTRUCTION = "Analyze this image for vehicle identification and damage assessment."


def build_system_prompt(
    plate_focus: str | None = None,
    damage_focus: str | None = None,
) -> str:
    """
    Assemble the system instruction from both criteria sets.

    Args:
        plate_focus: Custom criteria set A, or None for the built-in one.
        damage_focus: Custom criteria set B, or None for the built-in one.

    Returns:
        str: Full system instruction.
    """
    return "\n\n".join(
        [
            "You are a vehicle analysis specialist. Analyze the image using TWO "
            "different criteria sets and return a single JSON object containing "
            "both results.",
            plate_focus or PLATE_FOCUS_CRITERIA,
            damage_focus or DAMAGE_FOCUS_CRITERIA,
            RESPONSE_FORMAT,
        ]
    )
