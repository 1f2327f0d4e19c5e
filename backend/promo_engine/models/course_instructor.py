from sqlalchemy import Column, Integer, String, Boolean, UniqueConstraint
from promo_engine.core.database import Base


class CourseInstructor(Base):
    """Who teaches which course; kept in sync by the course catalog."""
    __tablename__ = "course_instructors"
    __table_args__ = (
        UniqueConstraint("course_id", "user_id", name="uq_course_instructors_course_user"),
    )

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(String(64), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    is_primary = Column(Boolean, default=True, nullable=False)  # False for co-instructors
