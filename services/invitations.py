import asyncio
from datetime import timedelta
from typing import List, Optional, Tuple

from constants import Collections, InvitationStatus
from exceptions import ConflictError, PermissionDeniedError, ValidationError
from logging_config import get_logger
from models.invitation import InvitationModel
from models.project import ProjectMember, ProjectModel
from models.user import UserModel
from services.common import ServiceContext, best_effort, load_invitation, load_project, load_user, require
from services.validators import member_role_error, normalize_email
from utils.email import send_project_invitation_email

logger = get_logger("invitations")

MAX_EXPIRY_DAYS = 30


class InvitationService:
    def __init__(self, ctx: ServiceContext):
        self.ctx = ctx
        self.store = ctx.store

    def invite_url(self, invitation: InvitationModel) -> str:
        return invitation.shareable_link(self.ctx.frontend_url)

    async def create_invitation(
        self,
        project_id: str,
        actor: UserModel,
        member_role: str,
        invited_email: Optional[str] = None,
        expiry_days: Optional[int] = None,
    ) -> InvitationModel:
        project = await load_project(self.store, project_id)
        require(project.is_admin(actor.id), "Only the project admin can invite members")

        role_error = member_role_error(member_role)
        if role_error:
            raise ValidationError.for_field("member_role", role_error)
        days = expiry_days if expiry_days is not None else self.ctx.invitation_expiry_days
        if not 1 <= days <= MAX_EXPIRY_DAYS:
            raise ValidationError.for_field("expiry_days", f"Expiry must be between 1 and {MAX_EXPIRY_DAYS} days")
        email = normalize_email(invited_email) if invited_email else None
        if email and email == str(actor.email).lower():
            raise ValidationError.for_field("invited_email", "You cannot invite yourself")

        now = self.ctx.clock()
        invitation = InvitationModel(
            project_id=project.id,
            project_name=project.name,
            invited_by=actor.id,
            invited_by_name=actor.name,
            invited_email=email,
            member_role=member_role,
            created_at=now,
            expires_at=now + timedelta(days=days),
        )
        await self.store.set(Collections.INVITATIONS, invitation.id, invitation.model_dump())
        logger.info(
            "Invitation created",
            extra={"data": {"invitation_id": invitation.id, "project_id": project.id, "role": member_role}},
        )

        if email:
            await self._deliver(invitation, email)
        return invitation

    async def _deliver(self, invitation: InvitationModel, email: str) -> None:
        url = self.invite_url(invitation)
        # Resend's client is synchronous
        await best_effort(
            "invitation email",
            asyncio.to_thread(
                send_project_invitation_email,
                to_email=email,
                project_name=invitation.project_name,
                invited_by_name=invitation.invited_by_name,
                role=invitation.member_role,
                invite_url=url,
            ),
            invitation_id=invitation.id,
        )

        users = await self.store.query(Collections.USERS, [("email", "==", email)], limit=1)
        if users:
            await best_effort(
                "invitation notification",
                self.ctx.notifier.project_invite(users[0]["id"], invitation, url),
                invitation_id=invitation.id,
            )

    async def get_invitation(self, invitation_id: str) -> InvitationModel:
        return await load_invitation(self.store, invitation_id)

    async def accept_invitation(self, invitation_id: str, user_id: str) -> Tuple[ProjectModel, ProjectMember]:
        """
        Join the invitation's project with its role.

        Everything is re-read inside the transaction, so of two concurrent
        accepts only one can see the invitation as pending.
        """
        now = self.ctx.clock()

        async def txn(session):
            invitation = await load_invitation(self.store, invitation_id, session=session)
            if invitation.status != InvitationStatus.PENDING:
                raise ConflictError(f"This invitation has already been {invitation.status}")
            if invitation.is_expired(now):
                raise ConflictError("This invitation has expired")

            user = await load_user(self.store, user_id, session=session)
            if invitation.invited_email and invitation.invited_email.lower() != str(user.email).lower():
                raise PermissionDeniedError("This invitation was sent to a different email address")

            project = await load_project(self.store, invitation.project_id, session=session)
            if project.is_admin(user.id):
                raise ConflictError("You are the admin of this project")
            if project.is_member(user.id):
                raise ConflictError("You are already a member of this project")

            member = ProjectMember(
                user_id=user.id,
                name=user.name,
                email=str(user.email),
                photo_url=user.photo_url,
                role=invitation.member_role,
                joined_at=now,
            )
            await self.store.update(
                Collections.PROJECTS, project.id,
                push={"members": member.model_dump()},
                set_fields={"updated_at": now},
                session=session,
            )
            await self.store.update(
                Collections.INVITATIONS, invitation.id,
                set_fields={"status": InvitationStatus.ACCEPTED, "accepted_by": user.id, "accepted_at": now},
                session=session,
            )
            await self.store.update(
                Collections.USERS, user.id,
                add_to_set={"project_ids": project.id},
                set_fields={"updated_at": now},
                session=session,
            )
            return project.model_copy(update={"members": [*project.members, member], "updated_at": now}), member

        project, member = await self.store.run_transaction(txn)
        logger.info(
            f"Invitation accepted for project {project.name}",
            extra={"data": {"invitation_id": invitation_id, "user_id": user_id, "role": member.role}},
        )
        return project, member

    async def cancel_invitation(self, invitation_id: str, actor_id: str) -> InvitationModel:
        async def txn(session):
            invitation = await load_invitation(self.store, invitation_id, session=session)
            project = await load_project(self.store, invitation.project_id, session=session)
            require(project.is_admin(actor_id), "Only the project admin can cancel invitations")
            if invitation.status != InvitationStatus.PENDING:
                raise ConflictError(f"Only pending invitations can be cancelled (this one is {invitation.status})")
            await self.store.update(
                Collections.INVITATIONS, invitation_id,
                set_fields={"status": InvitationStatus.CANCELLED},
                session=session,
            )
            return invitation.model_copy(update={"status": InvitationStatus.CANCELLED})

        invitation = await self.store.run_transaction(txn)
        logger.info("Invitation cancelled", extra={"data": {"invitation_id": invitation_id}})
        return invitation

    async def list_pending_invitations(self, project_id: str, actor_id: str) -> List[InvitationModel]:
        project = await load_project(self.store, project_id)
        require(project.has_admin_control(actor_id), "Only the admin or a director can view invitations")

        now = self.ctx.clock()
        docs = await self.store.query(
            Collections.INVITATIONS,
            [("project_id", "==", project_id), ("status", "==", InvitationStatus.PENDING)],
            order_by="created_at",
            descending=True,
        )
        invitations = [InvitationModel(**doc) for doc in docs]
        return [i for i in invitations if i.is_valid(now)]
