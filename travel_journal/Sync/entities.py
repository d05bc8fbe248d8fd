# entities.py
# Description: Descriptors binding a record model to its remote table and row schema.
#
# The sync manager iterates these in order, so parents (trips) are always uploaded and
# downloaded before their children (entries).
#
# Imports
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple, Type
#
# 3rd-Party Imports
from pydantic import BaseModel
#
# Local Imports
from travel_journal.DB.Journal_DB import JournalDB
from travel_journal.Models.Base_Model import ApplyOutcome, BaseRecord
from travel_journal.Models.Entry import Entry
from travel_journal.Models.Trip import Trip
from travel_journal.remote_api.schemas import EntryRow, TripRow
#
#######################################################################################################################
#
# Functions:

@dataclass(frozen=True)
class SyncableEntity:
    name: str
    model: Type[BaseRecord]
    row_schema: Type[BaseModel]

    @property
    def table_name(self) -> str:
        return self.model.table_name

    def find_unsynced(self, db: JournalDB) -> List[BaseRecord]:
        return self.model.find_unsynced(db)

    def parse_remote_row(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """Validates a downloaded row and returns it as a plain dict of known columns."""
        return self.row_schema.model_validate(row).model_dump()

    def apply_remote_row(self, db: JournalDB, row: Dict[str, Any]) -> ApplyOutcome:
        return self.model.apply_remote_row(db, self.parse_remote_row(row))


TRIP_ENTITY = SyncableEntity(name="trips", model=Trip, row_schema=TripRow)
ENTRY_ENTITY = SyncableEntity(name="entries", model=Entry, row_schema=EntryRow)

DEFAULT_ENTITIES: Tuple[SyncableEntity, ...] = (TRIP_ENTITY, ENTRY_ENTITY)

#
# End of entities.py
#######################################################################################################################
