"""
Skills API routes - skill catalogue, course links and skill profiles.
"""

from typing import Optional
from fastapi import APIRouter, Body, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from archetype.database import get_db
from archetype.identity import CurrentUser, can_access_user, get_current_user, require_roles
from archetype.schemas import CourseSkillLink, SkillCreate, SkillRecalculateRequest
from archetype.services import skills

router = APIRouter()


@router.post("/api/skills", status_code=201)
def create_skill(request: SkillCreate,
                 user: CurrentUser = Depends(require_roles("admin")),
                 db: Session = Depends(get_db)):
    skill = skills.create_skill(db, request.name, request.description)
    return {
        "message": "Skill created successfully",
        "skill": {"id": str(skill.id), "name": skill.name, "description": skill.description},
    }


@router.get("/api/skills")
def list_skills(user: CurrentUser = Depends(get_current_user),
                db: Session = Depends(get_db)):
    return {"skills": skills.list_skills(db)}


@router.post("/api/skills/course-link", status_code=201)
def link_course_skill(request: CourseSkillLink,
                      user: CurrentUser = Depends(require_roles("admin")),
                      db: Session = Depends(get_db)):
    link = skills.link_course_skill(db, request.course_id, request.skill_id, request.weight)
    return {
        "message": "Skill linked to course successfully",
        "link": {"course_id": link.course_id, "skill_id": link.skill_id, "weight": link.weight},
    }


@router.post("/api/skills/calculate/{user_id}")
def calculate_skills(user_id: str,
                     request: Optional[SkillRecalculateRequest] = Body(None),
                     user: CurrentUser = Depends(require_roles("supervisor", "admin")),
                     db: Session = Depends(get_db)):
    """Recalculate every skill level of a user."""
    if not can_access_user(db, user, user_id):
        raise HTTPException(status_code=403, detail="Not authorized to access this resource")
    rating = request.supervisor_rating if request else None
    results = skills.recalculate_skills(db, user_id, supervisor_rating=rating)
    return {"message": "Skills calculated successfully", "skills": results}


@router.get("/api/skills/search")
def search_by_skill(skill_name: Optional[str] = Query(None, description="Skill name (substring)"),
                    min_level: float = Query(0, ge=0, le=5, description="Minimum level"),
                    user: CurrentUser = Depends(get_current_user),
                    db: Session = Depends(get_db)):
    if not skill_name:
        raise HTTPException(status_code=400, detail="skill_name parameter required")
    return {"users": skills.search_users_by_skill(db, skill_name, min_level)}


@router.get("/api/skills/user/{user_id}")
def skill_profile(user_id: str,
                  user: CurrentUser = Depends(get_current_user),
                  db: Session = Depends(get_db)):
    return {"skill_profile": skills.get_skill_profile(db, user_id)}


@router.get("/api/skills/graph/{user_id}")
def skill_graph(user_id: str,
                user: CurrentUser = Depends(get_current_user),
                db: Session = Depends(get_db)):
    return {"graph_data": skills.get_skill_graph(db, user_id)}
