from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime


class TaskCreate(BaseModel):
    title: str
    description: Optional[str] = None
    deadline: Optional[datetime] = None
    attachment_ref: Optional[str] = None
    assignee_ids: List[int] = Field(default_factory=list)


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    deadline: Optional[datetime] = None
    attachment_ref: Optional[str] = None
    assignee_ids: Optional[List[int]] = None


class TaskSubmit(BaseModel):
    attachment_ref: Optional[str] = None


class AssignmentOut(BaseModel):
    user_id: int
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    completed: bool = False
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SubmissionOut(BaseModel):
    user_id: int
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    attachment_ref: Optional[str] = None
    submitted_at: datetime

    class Config:
        from_attributes = True


class TaskBase(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    deadline: Optional[datetime] = None
    attachment_ref: Optional[str] = None
    created_by: Optional[int] = None
    created_by_name: Optional[str] = None
    completed: bool = False
    created_at: Optional[datetime] = None


class TaskOut(TaskBase):
    assignments: List[AssignmentOut] = Field(default_factory=list)
    submissions: List[SubmissionOut] = Field(default_factory=list)

    class Config:
        from_attributes = True


class TaskProgressOut(TaskOut):
    total_assigned: int
    completed_count: int
    progress_percent: int
    status: str
    is_overdue: bool


class MyTaskOut(TaskBase):
    my_assignment: AssignmentOut
    my_submission: Optional[SubmissionOut] = None


class TaskDeletedOut(BaseModel):
    id: int
    title: str
    assignee_ids: List[int] = Field(default_factory=list)
    notifications_tombstoned: int = 0
