from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import BaseModel

from ..db import SharedDb
from ..errors import NotFoundError, StoreError, ValidationError
from ..logs import LogContext
from ..repository import record_repo
from ..services.record_svc import name_filter_from_query, parse_id, validate_fields

logger = logging.getLogger(__name__)

router = APIRouter()


class RecordBody(BaseModel):
    id: Optional[int] = None
    name: str
    phone: str


def get_db(request: Request) -> SharedDb:
    return request.app.state.db


def _id_or_400(record_id: str) -> int:
    try:
        return parse_id(record_id)
    except ValidationError:
        raise HTTPException(status_code=400, detail="bad id")


@router.get("/api/v1/records")
def api_records_list(request: Request, db: SharedDb = Depends(get_db)):
    try:
        name = name_filter_from_query(request.query_params.multi_items())
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    try:
        with db.acquire() as conn:
            records = record_repo.list_records(conn, name)
    except StoreError as e:
        log = LogContext("LIST_RECORDS")
        log.set_payload({"name": name})
        log.write("ERROR", str(e))
        raise HTTPException(status_code=500, detail="couldn't read records from database")
    return record_repo.record_dicts(records)


@router.get("/api/v1/records/{record_id}")
def api_record_get(record_id: str, db: SharedDb = Depends(get_db)):
    rid = _id_or_400(record_id)
    try:
        with db.acquire() as conn:
            rec = record_repo.get_record(conn, rid)
    except (StoreError, NotFoundError) as e:
        log = LogContext("GET_RECORD")
        log.set_entity("record", rid)
        log.write("ERROR", str(e))
        # not-found shares the 500 with store failures
        raise HTTPException(status_code=500, detail="couldn't read records from database")
    return rec.to_dict()


@router.post("/api/v1/records", status_code=201)
def api_record_create(body: RecordBody, db: SharedDb = Depends(get_db)):
    log = LogContext("CREATE_RECORD")
    log.set_payload({"name": body.name, "phone": body.phone})
    try:
        name, phone = validate_fields(body.name, body.phone)
    except ValidationError as e:
        log.write("ERROR", str(e))
        raise HTTPException(status_code=400, detail=str(e))
    try:
        with db.acquire() as conn:
            record_repo.insert_record(conn, name, phone)
    except StoreError as e:
        log.write("ERROR", str(e))
        raise HTTPException(status_code=500, detail="couldn't insert record")
    log.write("OK")
    return Response(status_code=201)


@router.put("/api/v1/records/{record_id}", status_code=204)
def api_record_update(record_id: str, body: RecordBody, db: SharedDb = Depends(get_db)):
    rid = _id_or_400(record_id)
    log = LogContext("UPDATE_RECORD")
    log.set_entity("record", rid)
    log.set_payload({"name": body.name, "phone": body.phone})
    try:
        name, phone = validate_fields(body.name, body.phone)
    except ValidationError as e:
        log.write("ERROR", str(e))
        raise HTTPException(status_code=400, detail=str(e))
    try:
        with db.acquire() as conn:
            affected = record_repo.update_record(conn, rid, name, phone)
    except StoreError as e:
        log.write("ERROR", str(e))
        raise HTTPException(status_code=404, detail="couldn't update record")
    if affected == 0:
        logger.info("update of record %s matched no rows", rid)
    log.write("OK")
    return Response(status_code=204)


@router.delete("/api/v1/records/{record_id}", status_code=204)
def api_record_delete(record_id: str, db: SharedDb = Depends(get_db)):
    rid = _id_or_400(record_id)
    log = LogContext("DELETE_RECORD")
    log.set_entity("record", rid)
    try:
        with db.acquire() as conn:
            record_repo.delete_records(conn, [rid])
    except StoreError as e:
        log.write("ERROR", str(e))
        raise HTTPException(status_code=404, detail="couldn't delete record")
    log.write("OK")
    return Response(status_code=204)
