from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from tasktree.core.database import get_db
from tasktree.schemas.tag import TagCreate, TagResponse, TagUpdate
from tasktree.services import tag_service

router = APIRouter(prefix="/tags", tags=["tags"])


@router.get("", response_model=List[TagResponse])
def list_tags(db: Session = Depends(get_db)):
    return tag_service.list_tags(db)


@router.post("", response_model=TagResponse, status_code=status.HTTP_201_CREATED)
def create_tag(tag_data: TagCreate, db: Session = Depends(get_db)):
    return tag_service.create_tag(db, tag_data.name, tag_data.color)


@router.put("/{tag_id}", response_model=TagResponse)
def update_tag(tag_id: str, tag_data: TagUpdate, db: Session = Depends(get_db)):
    return tag_service.update_tag(db, tag_id, name=tag_data.name, color=tag_data.color)


@router.delete("/{tag_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_tag(tag_id: str, db: Session = Depends(get_db)):
    tag_service.delete_tag(db, tag_id)
