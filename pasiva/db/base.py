# pasiva/db/base.py
# Import all the models, so that Base has them before create_all runs
from pasiva.db.base_class import Base
from pasiva.schemas.room_document import RoomDocument
