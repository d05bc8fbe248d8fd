# Entry.py
# Description: Journal entry record, attached to a trip.
#
# Images are references to files on this device. They are stored locally as a JSON array
# and are never uploaded; downloads leave them untouched.
#
# Imports
import json
import numbers
from typing import Any, List
#
# 3rd-Party Imports
#
# Local Imports
from travel_journal.Constants import TABLE_ENTRIES
from travel_journal.DB.Journal_DB import JournalDB, InputError
from travel_journal.Models.Base_Model import BaseRecord
#
#######################################################################################################################
#
# Functions:

class Entry(BaseRecord):
    table_name = TABLE_ENTRIES
    FIELDS = ("trip_id", "title", "content", "location", "latitude", "longitude", "images")
    UPDATABLE_FIELDS = ("title", "content", "location", "latitude", "longitude", "images")
    REMOTE_FIELDS = ("trip_id", "title", "content", "location", "latitude", "longitude")

    def _coerce_field(self, name: str, value: Any) -> Any:
        if name == "title" and value is None:
            return ""
        if name == "images":
            if value is None or value == "":
                return []
            if isinstance(value, str):
                try:
                    value = json.loads(value)
                except json.JSONDecodeError as e:
                    raise InputError(f"Stored images for entry are not valid JSON: {e}") from e
            if not isinstance(value, (list, tuple)):
                raise InputError("Entry images must be a list of image references.")
            return list(value)
        return value

    def _serialize_field(self, name: str, value: Any) -> Any:
        if name == "images":
            return json.dumps(value) if value else None
        return value

    def validate(self):
        super().validate()
        if not self.trip_id or not isinstance(self.trip_id, str):
            raise InputError("Entry trip_id is required.")
        if not isinstance(self.title, str):
            raise InputError("Entry title must be a string.")
        self._validate_coordinate("latitude", -90.0, 90.0)
        self._validate_coordinate("longitude", -180.0, 180.0)
        if not all(isinstance(image, str) for image in self.images):
            raise InputError("Entry images must be a list of strings.")

    def _validate_coordinate(self, name: str, lower: float, upper: float):
        value = getattr(self, name)
        if value is None:
            return
        if isinstance(value, bool) or not isinstance(value, numbers.Real):
            raise InputError(f"Entry {name} must be a number, got {type(value).__name__}.")
        if not lower <= float(value) <= upper:
            raise InputError(f"Entry {name} {value} is outside [{lower}, {upper}].")

    @classmethod
    def find_by_trip_id(cls, db: JournalDB, trip_id: str) -> List["Entry"]:
        """Non-deleted entries of one trip, newest first."""
        rows = db.execute(
            f"SELECT * FROM {cls.table_name} WHERE trip_id = ? AND deleted = 0 ORDER BY created_at DESC",
            (trip_id,),
        ).rows
        return cls._from_rows(db, rows)

#
# End of Entry.py
#######################################################################################################################
