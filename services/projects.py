from datetime import datetime
from typing import Any, Dict, List, Optional

from constants import Collections
from exceptions import NotFoundError, ValidationError
from logging_config import get_logger
from models.project import DirectorPermissions, ProjectModel
from models.user import UserModel
from services.common import ServiceContext, best_effort, load_project, require, require_access
from services.validators import date_error, project_errors, raise_for

logger = get_logger("projects")

# Fields hidden from members who cannot see budget details
_DETAIL_FIELDS = ("budget", "total_spent", "director_permissions")

_EDITABLE_FIELDS = ("name", "description", "budget", "status", "start_date", "end_date", "image_url")


class ProjectService:
    def __init__(self, ctx: ServiceContext):
        self.ctx = ctx
        self.store = ctx.store

    # --- CREATE / READ ---

    async def create_project(
        self,
        actor: UserModel,
        name: str,
        budget: float,
        description: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        image_url: Optional[str] = None,
    ) -> ProjectModel:
        """The creator becomes the project's single admin."""
        now = self.ctx.clock()
        raise_for(
            project_errors(name=name, budget=budget, description=description, start_date=start_date or now, end_date=end_date),
            "Invalid project",
        )

        project = ProjectModel(
            name=name.strip(),
            description=description.strip() if description else None,
            budget=float(budget),
            admin_id=actor.id,
            admin_name=actor.name,
            start_date=start_date or now,
            end_date=end_date,
            image_url=image_url,
            created_at=now,
            updated_at=now,
        )

        async def txn(session):
            await self.store.set(Collections.PROJECTS, project.id, project.model_dump(), session=session)
            matched = await self.store.update(
                Collections.USERS, actor.id,
                add_to_set={"project_ids": project.id},
                set_fields={"updated_at": now},
                session=session,
            )
            if not matched:
                raise NotFoundError(f"User {actor.id} not found")

        await self.store.run_transaction(txn)
        logger.info(f"Project created: {project.name}", extra={"data": {"project_id": project.id, "admin_id": actor.id}})
        return project

    async def get_project(self, project_id: str, user_id: str) -> ProjectModel:
        project = await load_project(self.store, project_id)
        require_access(project, user_id)
        return project

    def project_view(self, project: ProjectModel, user_id: str) -> Dict[str, Any]:
        """Serialise a project for one user, hiding budget figures from labour."""
        data = project.model_dump()
        data["member_count"] = project.member_count
        if project.is_admin(user_id):
            data["my_role"] = "admin"
        else:
            member = project.get_member(user_id)
            data["my_role"] = member.role if member else None
        data["permissions"] = {
            "has_admin_control": project.has_admin_control(user_id),
            "can_see_details": project.can_see_details(user_id),
            "can_manage_expenses": project.can_manage_expenses(user_id),
            "can_delete_expenses": project.can_delete_expenses(user_id),
            "can_delete_members": project.can_delete_members(user_id),
        }

        if project.can_see_details(user_id):
            data["remaining_budget"] = project.remaining_budget
            data["budget_utilization"] = project.budget_utilization
            data["is_over_budget"] = project.is_over_budget
        else:
            for key in _DETAIL_FIELDS:
                data.pop(key, None)
        return data

    async def list_projects_for_user(self, user_id: str) -> List[ProjectModel]:
        """
        Projects the user administers or belongs to.

        ``projects.admin_id`` and ``projects.members`` are authoritative;
        ``users.project_ids`` can lag behind them, so all three sources are
        merged and ids from the index that no longer grant access are dropped.
        """
        projects: Dict[str, ProjectModel] = {}

        admin_docs = await self.store.query(Collections.PROJECTS, [("admin_id", "==", user_id)])
        member_docs = await self.store.query(Collections.PROJECTS, [("members.user_id", "==", user_id)])
        for doc in [*admin_docs, *member_docs]:
            if doc["id"] not in projects:
                projects[doc["id"]] = ProjectModel(**doc)

        user_doc = await self.store.get(Collections.USERS, user_id)
        indexed_ids = set(user_doc.get("project_ids") or []) if user_doc else set()

        missing = [pid for pid in indexed_ids if pid not in projects]
        if missing:
            for doc in await self.store.query_in(Collections.PROJECTS, "id", missing):
                project = ProjectModel(**doc)
                if project.has_access(user_id):
                    projects.setdefault(project.id, project)

        stale = indexed_ids - set(projects)
        if stale:
            logger.warning(
                "User project index lists projects without access",
                extra={"data": {"user_id": user_id, "stale_ids": sorted(stale)}},
            )

        return sorted(projects.values(), key=lambda p: p.updated_at, reverse=True)

    # --- UPDATE ---

    async def update_project(self, project_id: str, actor_id: str, **changes) -> ProjectModel:
        unknown = set(changes) - set(_EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        project = await load_project(self.store, project_id)
        require(project.is_admin(actor_id), "Only the project admin can edit the project")
        if not changes:
            return project

        # Stored values must still load as a ProjectModel
        type_errors = {}
        dates = {"start_date": project.start_date, "end_date": project.end_date}
        for field, label in (("start_date", "Start date"), ("end_date", "End date")):
            if field not in changes:
                continue
            message = date_error(changes[field], label, required=field == "start_date")
            if message:
                type_errors[field] = message
            else:
                dates[field] = changes[field]
        if changes.get("image_url") is not None and not isinstance(changes["image_url"], str):
            type_errors["image_url"] = "Image URL must be text"

        checked = {k: v for k, v in changes.items() if k in ("name", "budget", "description", "status")}
        raise_for({**project_errors(**checked, **dates), **type_errors}, "Invalid project")

        if isinstance(changes.get("name"), str):
            changes["name"] = changes["name"].strip()
        now = self.ctx.clock()
        await self.store.update(Collections.PROJECTS, project_id, set_fields={**changes, "updated_at": now})
        logger.info("Project updated", extra={"data": {"project_id": project_id, "fields": sorted(changes)}})
        return project.model_copy(update={**changes, "updated_at": now})

    async def update_director_permissions(
        self,
        project_id: str,
        actor_id: str,
        director_user_id: str,
        can_delete_expenses: Optional[bool] = None,
        can_delete_members: Optional[bool] = None,
    ) -> DirectorPermissions:
        now = self.ctx.clock()

        async def txn(session):
            project = await load_project(self.store, project_id, session=session)
            require(project.is_admin(actor_id), "Only the project admin can change director permissions")
            member = project.get_member(director_user_id)
            if not member:
                raise NotFoundError(f"User {director_user_id} is not a member of this project")
            if not member.is_director:
                raise ValidationError.for_field("director_user_id", "Permissions can only be granted to directors")

            current = project.director_permissions.get(director_user_id) or DirectorPermissions()
            updated = current.model_copy(update={
                k: v for k, v in {
                    "can_delete_expenses": can_delete_expenses,
                    "can_delete_members": can_delete_members,
                }.items() if v is not None
            })
            permissions = {uid: p.model_dump() for uid, p in project.director_permissions.items()}
            permissions[director_user_id] = updated.model_dump()
            await self.store.update(
                Collections.PROJECTS, project_id,
                set_fields={"director_permissions": permissions, "updated_at": now},
                session=session,
            )
            return updated

        updated = await self.store.run_transaction(txn)
        logger.info(
            "Director permissions updated",
            extra={"data": {"project_id": project_id, "director": director_user_id, **updated.model_dump()}},
        )
        return updated

    # --- MEMBERSHIP ---

    async def remove_member(self, project_id: str, actor: UserModel, member_id: str) -> None:
        """Remove a member by ProjectMember.id. Admin, or a director allowed to delete members."""
        now = self.ctx.clock()

        async def txn(session):
            project = await load_project(self.store, project_id, session=session)
            require(project.can_delete_members(actor.id), "You do not have permission to remove members")
            member = project.get_member_by_id(member_id)
            if not member:
                raise NotFoundError(f"Member {member_id} not found in this project")

            await self.store.update(
                Collections.PROJECTS, project_id,
                pull={"members": {"user_id": member.user_id}},
                unset=[f"director_permissions.{member.user_id}"],
                set_fields={"updated_at": now},
                session=session,
            )
            await self.store.update(
                Collections.USERS, member.user_id,
                pull={"project_ids": project_id},
                set_fields={"updated_at": now},
                session=session,
            )
            return project, member

        project, member = await self.store.run_transaction(txn)
        logger.info(
            f"Member removed from project {project.name}",
            extra={"data": {"project_id": project_id, "member_user_id": member.user_id, "removed_by": actor.id}},
        )

        if not project.is_admin(actor.id):
            await best_effort(
                "member removal notification",
                self.ctx.notifier.member_removed_by_director(project, member, actor.name),
                project_id=project_id,
            )

    # --- DELETE ---

    async def delete_project(self, project_id: str, actor_id: str) -> Dict[str, int]:
        """Delete a project with its expenses and invitations. Admin only."""

        async def txn(session):
            project = await load_project(self.store, project_id, session=session)
            require(project.is_admin(actor_id), "Only the project admin can delete the project")

            expenses = await self.store.query(Collections.EXPENSES, [("project_id", "==", project_id)], session=session)
            receipt_refs = [e["receipt_ref"] for e in expenses if e.get("receipt_ref")]

            deleted_expenses = await self.store.delete_where(
                Collections.EXPENSES, [("project_id", "==", project_id)], session=session
            )
            deleted_invitations = await self.store.delete_where(
                Collections.INVITATIONS, [("project_id", "==", project_id)], session=session
            )
            await self.store.update_where(
                Collections.USERS, [("project_ids", "array_contains", project_id)],
                pull={"project_ids": project_id},
                session=session,
            )
            await self.store.delete(Collections.PROJECTS, project_id, session=session)
            return receipt_refs, {"expenses": deleted_expenses, "invitations": deleted_invitations}

        receipt_refs, counts = await self.store.run_transaction(txn)
        logger.info(f"Project deleted: {project_id}", extra={"data": {"project_id": project_id, **counts}})

        for ref in receipt_refs:
            await best_effort("receipt cleanup", self.ctx.receipts.delete(ref), project_id=project_id, receipt_ref=ref)
        return counts
