from typing import Dict, List
from string import ascii_uppercase

from busline.routes.schemas import SeatLayout

# rows per bus and seats per side of the aisle
LAYOUT_CONFIG: Dict[SeatLayout, Dict] = {
    SeatLayout.TWO_BY_TWO: {"rows": 10, "cols": (2, 2)},
    SeatLayout.TWO_BY_THREE: {"rows": 10, "cols": (2, 3)},
    SeatLayout.TWO_BY_ONE: {"rows": 10, "cols": (2, 1)},
}

def seat_rows(layout: SeatLayout) -> List[List[str]]:
    """Seat IDs row by row, front to rear: A1 B1 C1 D1, A2 B2 ..."""
    config = LAYOUT_CONFIG[SeatLayout(layout)]
    seats_per_row = sum(config["cols"])
    letters = ascii_uppercase[:seats_per_row]
    return [
        [f"{letter}{row}" for letter in letters]
        for row in range(1, config["rows"] + 1)
    ]

def generate_seat_ids(layout: SeatLayout) -> List[str]:
    return [seat for row in seat_rows(layout) for seat in row]

def is_valid_seat(layout: SeatLayout, seat_id: str) -> bool:
    return seat_id in set(generate_seat_ids(layout))
