from datetime import datetime
from pydantic import BaseModel
from typing import List, Optional

class RestoreResponse(BaseModel):
    success: bool
    recordsRestored: int
    warnings: List[str]

class RestoreFailure(BaseModel):
    success: bool = False
    error: str = "Restore failed"
    details: List[str]

class BackupJobOut(BaseModel):
    id: str
    status: str
    startedAt: Optional[datetime] = None
    completedAt: Optional[datetime] = None
    sizeBytes: Optional[int] = None
    checksum: Optional[str] = None
    initiatedBy: Optional[str] = None
    errorMessage: Optional[str] = None
    createdAt: Optional[datetime] = None
