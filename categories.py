from fastapi import APIRouter, Depends
from pymongo import ASCENDING
from pymongo.database import Database

from database import get_db, get_documents, serialize

router = APIRouter(prefix="/categories", tags=["categories"])


def list_categories(db: Database) -> list:
    return serialize(get_documents(db, "category", sort=[("label", ASCENDING)]))


@router.get("")
def get_categories(db: Database = Depends(get_db)):
    return {"success": True, "data": list_categories(db)}
