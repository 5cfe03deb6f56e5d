from typing import List, Optional
from datetime import datetime, timezone
import logging

from ..database.database_service import database_service
from ..database.collections import COLLECTIONS
from ..models.database_models import Issue, Notification
from ..models.user import UserRole
from .identity_service import identity_service

logger = logging.getLogger(__name__)


class NotificationService:
    """
    In-app notifications for the issue workflow.

    Every method here is best effort: a failed delivery is logged and
    reported as False, it never propagates into the transition that
    triggered it.
    """

    def __init__(self):
        self.db = database_service
        self.identity = identity_service

    async def create_notification(
        self,
        recipient_id: str,
        title: str,
        message: str,
        notification_type: str = "update",
        issue_id: Optional[str] = None,
        priority: str = "medium",
    ) -> bool:
        try:
            notification_data = {
                "recipientId": recipient_id,
                "title": title,
                "message": message,
                "notificationType": notification_type,
                "issueId": issue_id,
                "priority": priority,
                "isRead": False,
                "createdAt": datetime.now(timezone.utc),
            }
            success, notification_id, error = await self.db.create_document(
                COLLECTIONS['notifications'], notification_data
            )
            if not success:
                logger.error(f"[Notifications] Failed to create notification for {recipient_id}: {error}")
                return False

            # Imported here: the live query module pulls in the websocket stack
            from .live_query_service import connection_manager
            try:
                await connection_manager.send_personal_message(recipient_id, {
                    "type": "notification",
                    "id": notification_id,
                    **notification_data,
                })
            except Exception as e:
                logger.error(f"[Notifications] WebSocket push failed for {recipient_id}: {str(e)}")
            return True
        except Exception as e:
            logger.error(f"[Notifications] Failed to notify {recipient_id}: {str(e)}")
            return False

    async def notify_many(self, recipient_ids: List[str], title: str, message: str, **kwargs) -> int:
        sent = 0
        for recipient_id in recipient_ids:
            if recipient_id and await self.create_notification(recipient_id, title, message, **kwargs):
                sent += 1
        return sent

    async def _admin_ids(self) -> List[str]:
        try:
            return [p.uid for p in await self.identity.list_by_role(UserRole.ADMIN)]
        except Exception as e:
            logger.error(f"[Notifications] Could not load admin recipients: {str(e)}")
            return []

    async def _staff_id(self, email: Optional[str]) -> Optional[str]:
        try:
            profile = await self.identity.find_maintenance_staff(email)
        except Exception as e:
            logger.error(f"[Notifications] Could not look up staff {email}: {str(e)}")
            return None
        if not profile:
            logger.warning(f"[Notifications] No maintenance profile for {email}")
            return None
        return profile.uid

    async def notify_issue_assigned(self, issue: Issue) -> bool:
        staff_id = await self._staff_id(issue.assignedTo)
        if not staff_id:
            return False
        return await self.create_notification(
            staff_id,
            f"New assignment: {issue.title}",
            f"You have been assigned {issue.reportId} at {issue.location}.",
            notification_type="assignment",
            issue_id=issue.id,
            priority=issue.severity.value,
        )

    async def notify_work_submitted(self, issue: Issue) -> int:
        return await self.notify_many(
            await self._admin_ids(),
            f"Work submitted: {issue.title}",
            f"{issue.assignedTo} submitted completion proof for {issue.reportId}. Review required.",
            notification_type="completion",
            issue_id=issue.id,
        )

    async def notify_completion_approved(self, issue: Issue) -> bool:
        staff_id = await self._staff_id(issue.assignedTo)
        if not staff_id:
            return False
        return await self.create_notification(
            staff_id,
            f"Work approved: {issue.title}",
            f"Your completion of {issue.reportId} was approved.",
            notification_type="approval",
            issue_id=issue.id,
        )

    async def notify_completion_rejected(self, issue: Issue, reason: Optional[str] = None) -> bool:
        staff_id = await self._staff_id(issue.assignedTo)
        if not staff_id:
            return False
        message = f"Your completion of {issue.reportId} was sent back for more work."
        if reason:
            message += f" Reason: {reason}"
        return await self.create_notification(
            staff_id,
            f"Work rejected: {issue.title}",
            message,
            notification_type="rejection",
            issue_id=issue.id,
            priority="high",
        )

    async def notify_urgent_issue(self, issue: Issue) -> int:
        return await self.notify_many(
            await self._admin_ids(),
            f"Urgent issue reported: {issue.title}",
            f"{issue.reportId} at {issue.location} was reported with high severity.",
            notification_type="urgent",
            issue_id=issue.id,
            priority="high",
        )

    async def list_for_user(self, user_id: str, unread_only: bool = False, limit: int = 50) -> List[Notification]:
        filters = [("recipientId", "==", user_id)]
        if unread_only:
            filters.append(("isRead", "==", False))
        success, docs, error = await self.db.query_documents(COLLECTIONS['notifications'], filters)
        if not success:
            raise Exception(f"Failed to load notifications: {error}")

        notifications = [Notification(**doc) for doc in docs]
        notifications.sort(
            key=lambda n: n.createdAt or datetime.min.replace(tzinfo=timezone.utc), reverse=True
        )
        return notifications[:limit]

    async def mark_read(self, user_id: str, notification_id: str) -> bool:
        """Mark one notification read; False when it does not exist or belongs to someone else."""
        success, notification, _ = await self.db.get_document(COLLECTIONS['notifications'], notification_id)
        if not success or not notification or notification.get("recipientId") != user_id:
            return False
        success, error = await self.db.update_document(
            COLLECTIONS['notifications'], notification_id,
            {"isRead": True, "readAt": datetime.now(timezone.utc)},
        )
        if not success:
            raise Exception(f"Failed to mark notification read: {error}")
        return True

    async def mark_all_read(self, user_id: str) -> int:
        unread = await self.list_for_user(user_id, unread_only=True, limit=None)
        now = datetime.now(timezone.utc)
        updated = 0
        for notification in unread:
            success, error = await self.db.update_document(
                COLLECTIONS['notifications'], notification.id, {"isRead": True, "readAt": now}
            )
            if success:
                updated += 1
            else:
                logger.error(f"[Notifications] Failed to mark {notification.id} read: {error}")
        return updated


notification_service = NotificationService()
