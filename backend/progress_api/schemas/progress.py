from pydantic import BaseModel, Field


class CourseProgressIn(BaseModel):
    limit: int = Field(default=100)
    offset: int = Field(default=0)
