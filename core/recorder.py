"""
Session Recorder
In-memory log of one cook session, handed off when the session ends
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Union
from uuid import uuid4

from models.cooking import AlertEvent, CookNote, CookPlan, SessionRecord, TemperatureSample

logger = logging.getLogger(__name__)


class SessionRecorder:
    """
    Accumulates readings, notes and stage history

    Append-only while the session runs; the one exception is a note text
    correction keyed by note id. finalize() hands the record over and drops
    the in-memory copy.
    """

    def __init__(
        self,
        meat_type: str,
        weight_lb: float,
        start_time: datetime,
        plan: Optional[CookPlan] = None,
        session_id: Optional[str] = None,
    ):
        """
        Args:
            meat_type: Meat being cooked
            weight_lb: Weight in pounds
            start_time: Session start
            plan: Cook plan the session follows, if any
            session_id: Record id (generated when omitted)
        """
        self.session_id = session_id or str(uuid4())
        self.meat_type = meat_type
        self.weight_lb = weight_lb
        self.start_time = start_time
        self.plan = plan
        self._readings: List[TemperatureSample] = []
        self._notes: Dict[str, CookNote] = {}
        self._stage_history: List[AlertEvent] = []
        self._finalized = False

    @property
    def is_finalized(self) -> bool:
        return self._finalized

    @property
    def reading_count(self) -> int:
        return len(self._readings)

    @property
    def notes(self) -> List[CookNote]:
        return list(self._notes.values())

    @property
    def last_reading(self) -> Optional[TemperatureSample]:
        return self._readings[-1] if self._readings else None

    def append(self, item: Union[TemperatureSample, CookNote]):
        """
        Append a reading or a note

        Raises:
            TypeError: item is neither a TemperatureSample nor a CookNote
        """
        if isinstance(item, TemperatureSample):
            self.append_sample(item)
        elif isinstance(item, CookNote):
            self.append_note(item)
        else:
            raise TypeError(f"cannot record {type(item).__name__}")

    def append_sample(self, sample: TemperatureSample):
        if self._closed("sample"):
            return
        self._readings.append(sample)

    def append_note(self, note: CookNote):
        if self._closed("note"):
            return
        if note.id in self._notes:
            raise ValueError(f"note {note.id} already recorded")
        self._notes[note.id] = note

    def edit_note(self, note_id: str, content: str) -> Optional[CookNote]:
        """
        Correct the text of an existing note

        Args:
            note_id: Id of the note to correct
            content: New text

        Returns:
            The replacement note, or None if the session is already finalized

        Raises:
            KeyError: no note with that id
        """
        if self._closed("note edit"):
            return None
        note = self._notes[note_id]
        edited = note.model_copy(update={"content": content})
        self._notes[note_id] = edited
        return edited

    def record_alert(self, event: AlertEvent):
        if self._closed("alert"):
            return
        self._stage_history.append(event)

    def finalize(self, end_time: datetime) -> Optional[SessionRecord]:
        """
        Close the session and hand over its record

        Args:
            end_time: Session end

        Returns:
            SessionRecord on the first call, None afterwards
        """
        if self._finalized:
            logger.warning("[Recorder] session %s already finalized", self.session_id)
            return None

        record = SessionRecord(
            id=self.session_id,
            meat_type=self.meat_type,
            weight_lb=self.weight_lb,
            start_time=self.start_time,
            end_time=end_time,
            readings=self._readings,
            notes=list(self._notes.values()),
            stage_history=self._stage_history,
            plan=self.plan,
        )
        self._finalized = True
        # ownership moves to the caller
        self._readings = []
        self._notes = {}
        self._stage_history = []
        logger.info(
            "[Recorder] session %s finalized with %d readings, %d notes",
            record.id,
            len(record.readings),
            len(record.notes),
        )
        return record

    def _closed(self, what: str) -> bool:
        if self._finalized:
            logger.warning("[Recorder] dropping %s for finalized session %s", what, self.session_id)
            return True
        return False
