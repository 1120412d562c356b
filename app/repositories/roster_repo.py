"""Read access to the student roster, groups, courses and weekly schedules."""
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.models.base import bson_to_decimal, to_object_id
from app.models.roster import CourseInfo, RosterStudent, ScheduleEntry


class RosterSource(ABC):
    """Port onto the roster owned by the student/course/group services."""

    @abstractmethod
    async def list_active_students(self) -> List[RosterStudent]:
        ...

    @abstractmethod
    async def get_student(self, student_id: str) -> Optional[RosterStudent]:
        ...

    @abstractmethod
    async def find_student_by_email(self, email: str) -> Optional[RosterStudent]:
        ...

    @abstractmethod
    async def get_students(self, student_ids: Iterable[str]) -> Dict[str, RosterStudent]:
        ...

    @abstractmethod
    async def get_courses(self, course_ids: Iterable[str]) -> Dict[str, CourseInfo]:
        ...

    @abstractmethod
    async def list_schedule(self, group_id: str) -> List[ScheduleEntry]:
        ...


class RosterRepository(RosterSource):
    """MongoDB-backed roster reads."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.students = db["students"]
        self.groups = db["groups"]
        self.courses = db["courses"]
        self.schedules = db["schedules"]

    async def list_active_students(self) -> List[RosterStudent]:
        docs = await self.students.find({"is_active": True}).to_list(None)
        return await self._resolve(docs)

    async def get_student(self, student_id: str) -> Optional[RosterStudent]:
        oid = to_object_id(student_id)
        if oid is None:
            return None
        doc = await self.students.find_one({"_id": oid})
        if not doc:
            return None
        return (await self._resolve([doc]))[0]

    async def find_student_by_email(self, email: str) -> Optional[RosterStudent]:
        doc = await self.students.find_one({"email": email})
        if not doc:
            return None
        return (await self._resolve([doc]))[0]

    async def get_students(self, student_ids: Iterable[str]) -> Dict[str, RosterStudent]:
        oids = [oid for oid in (to_object_id(sid) for sid in set(student_ids)) if oid is not None]
        if not oids:
            return {}
        docs = await self.students.find({"_id": {"$in": oids}}).to_list(None)
        return {student.id: student for student in await self._resolve(docs)}

    async def get_courses(self, course_ids: Iterable[str]) -> Dict[str, CourseInfo]:
        oids = [oid for oid in (to_object_id(cid) for cid in set(course_ids)) if oid is not None]
        if not oids:
            return {}
        docs = await self.courses.find({"_id": {"$in": oids}}).to_list(None)
        return {str(doc["_id"]): self._course_from_doc(doc) for doc in docs}

    async def list_schedule(self, group_id: str) -> List[ScheduleEntry]:
        oid = to_object_id(group_id)
        if oid is None:
            return []
        docs = await self.schedules.find({"group_id": oid}).to_list(None)
        return [
            ScheduleEntry(
                group_id=group_id,
                day_of_week=doc["day_of_week"],
                start_time=doc.get("start_time"),
                end_time=doc.get("end_time"),
            )
            for doc in docs
        ]

    # ===== PRIVATE HELPERS =====

    async def _resolve(self, docs: List[Dict[str, Any]]) -> List[RosterStudent]:
        """Attach group -> course to each student with two bulk lookups."""
        group_ids = {doc["group_id"] for doc in docs if doc.get("group_id")}
        groups: Dict[Any, Dict[str, Any]] = {}
        if group_ids:
            group_docs = await self.groups.find({"_id": {"$in": list(group_ids)}}).to_list(None)
            groups = {doc["_id"]: doc for doc in group_docs}

        course_ids = {group["course_id"] for group in groups.values() if group.get("course_id")}
        courses: Dict[Any, CourseInfo] = {}
        if course_ids:
            course_docs = await self.courses.find({"_id": {"$in": list(course_ids)}}).to_list(None)
            courses = {doc["_id"]: self._course_from_doc(doc) for doc in course_docs}

        students = []
        for doc in docs:
            group = groups.get(doc.get("group_id"))
            course = courses.get(group.get("course_id")) if group else None
            students.append(RosterStudent(
                id=str(doc["_id"]),
                first_name=doc.get("first_name", ""),
                last_name=doc.get("last_name"),
                email=doc.get("email"),
                is_active=doc.get("is_active", True),
                created_at=doc.get("created_at"),
                group_id=str(group["_id"]) if group else None,
                course=course,
            ))
        return students

    @staticmethod
    def _course_from_doc(doc: Dict[str, Any]) -> CourseInfo:
        return CourseInfo(
            id=str(doc["_id"]),
            name=doc.get("name", ""),
            price=bson_to_decimal(doc.get("price")),
        )
