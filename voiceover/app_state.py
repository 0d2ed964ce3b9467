"""
In-memory app state used by the CLI and the tests.

Stands in for the host application's store: current tab, medications, mood
and the emergency call flag.
"""

import logging
from dataclasses import dataclass, field, asdict
from typing import List, Dict, Any, Callable

from .collaborators import Obligation, MoodEntry

logger = logging.getLogger(__name__)


@dataclass
class Medication:
    id: str
    name: str
    dosage: str
    time: str
    taken: bool = False


def default_medications() -> List[Medication]:
    return [
        Medication("med-1", "Donepezil", "10mg", "8:00 AM", taken=True),
        Medication("med-2", "Vitamin D", "1000 IU", "12:00 PM"),
        Medication("med-3", "Memantine", "5mg", "6:00 PM"),
    ]


@dataclass
class InMemoryAppState:
    """AppState collaborator backed by plain attributes"""
    patient_name: str = "Margaret"
    caregiver_name: str = "Sarah Johnson"
    active_tab: str = "today"
    flow_step: str = ""
    medications: List[Medication] = field(default_factory=default_medications)
    current_mood: MoodEntry = field(default_factory=lambda: MoodEntry(label="Happy", emoji="😊"))
    step_count: int = 2340
    sleep_hours: float = 7.5
    sos_active: bool = False
    filled_inputs: Dict[str, str] = field(default_factory=dict)
    _listeners: List[Callable[[str], None]] = field(default_factory=list, repr=False)

    def on_navigate(self, callback: Callable[[str], None]):
        """Register a callback fired with the new tab after each screen change"""
        self._listeners.append(callback)

    def navigate(self, tab: str) -> None:
        if tab == self.active_tab:
            return
        logger.info(f"🧭 Navigating {self.active_tab} → {tab}")
        self.active_tab = tab
        for callback in list(self._listeners):
            callback(tab)

    def mark_obligation_done(self, obligation_id: str) -> None:
        for medication in self.medications:
            if medication.id == obligation_id:
                medication.taken = True
                logger.info(f"💊 {medication.name} marked as taken")
                return
        logger.warning(f"⚠️ Unknown medication id: {obligation_id}")

    def set_mood(self, entry: MoodEntry) -> None:
        self.current_mood = entry

    def trigger_emergency(self) -> None:
        logger.warning("🚨 Emergency SOS triggered")
        self.sos_active = True

    def cancel_emergency(self) -> None:
        logger.info("✅ Emergency SOS cancelled")
        self.sos_active = False

    def fill_input(self, slot_id: str, value: str) -> None:
        self.filled_inputs[slot_id] = value

    def pending_obligations(self) -> List[Obligation]:
        return [
            Obligation(id=m.id, name=m.name, detail=m.dosage, due=m.time)
            for m in self.medications if not m.taken
        ]

    def current_screen(self) -> str:
        return self.active_tab

    def current_flow_step(self) -> str:
        return self.flow_step

    def snapshot(self) -> Dict[str, Any]:
        return {
            'tab': self.active_tab,
            'flow_step': self.flow_step,
            'medications': [asdict(m) for m in self.medications],
            'current_mood': asdict(self.current_mood),
            'step_count': self.step_count,
            'sleep_hours': self.sleep_hours,
            'sos_active': self.sos_active,
            'caregiver_name': self.caregiver_name,
        }

