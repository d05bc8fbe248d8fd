# Trip.py
# Description: Trip record (a journey that groups journal entries)
#
# Imports
from typing import List
#
# 3rd-Party Imports
#
# Local Imports
from travel_journal.Constants import TABLE_TRIPS
from travel_journal.DB.Journal_DB import JournalDB, InputError
from travel_journal.Models.Base_Model import BaseRecord
#
#######################################################################################################################
#
# Functions:

class Trip(BaseRecord):
    table_name = TABLE_TRIPS
    FIELDS = ("title", "description", "start_date", "end_date")
    UPDATABLE_FIELDS = ("title", "description", "start_date", "end_date")
    REMOTE_FIELDS = ("title", "description", "start_date", "end_date")

    def validate(self):
        super().validate()
        if not isinstance(self.title, str) or not self.title.strip():
            raise InputError("Trip title is required.")
        for name in ("description", "start_date", "end_date"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, str):
                raise InputError(f"Trip {name} must be a string, got {type(value).__name__}.")

    @classmethod
    def find_all(cls, db: JournalDB) -> List["Trip"]:
        """All non-deleted trips, newest first."""
        rows = db.execute(f"SELECT * FROM {cls.table_name} WHERE deleted = 0 ORDER BY created_at DESC").rows
        return cls._from_rows(db, rows)

#
# End of Trip.py
#######################################################################################################################
