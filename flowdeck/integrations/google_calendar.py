"""Google Calendar integration for flowdeck.

Maps Google events onto CalendarEvent: the Google event `id` is the event id and
`iCalUID` is the stable external identifier. Datetimes are exchanged as naive
local wall-clock values in the configured time zone.
"""

import logging
import os
from datetime import datetime, timedelta
from typing import List, Optional
from zoneinfo import ZoneInfo

from dateutil import parser as date_parser
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from dotenv import load_dotenv

from flowdeck.engine.errors import CalendarAccessError, CalendarError, CalendarWriteError
from flowdeck.integrations.calendar_store import CalendarStore
from flowdeck.models.calendar_event import CalendarEvent

load_dotenv()

logger = logging.getLogger(__name__)

# Google Calendar API scopes
SCOPES = ['https://www.googleapis.com/auth/calendar']

# Fields requested when listing events
EVENT_FIELDS = "id,iCalUID,status,summary,description,start,end,attendees(email),recurrence,recurringEventId"


def _status_code(error: HttpError) -> Optional[int]:
    return getattr(getattr(error, "resp", None), "status", None)


class GoogleCalendarStore(CalendarStore):
    """CalendarStore backed by the Google Calendar API."""

    requires_polling = True

    def __init__(
        self,
        credentials: Optional[Credentials] = None,
        credentials_path: Optional[str] = None,
        calendar_id: Optional[str] = None,
        token_path: str = "token.json",
        time_zone: Optional[str] = None,
    ):
        """Initialize Google Calendar store.

        Args:
            credentials: Pre-built OAuth2 credentials. Skips the local OAuth flow.
            credentials_path: Path to OAuth2 client secrets JSON file.
                             If None, reads from GOOGLE_CALENDAR_CREDENTIALS_PATH env var.
            calendar_id: Google Calendar ID to use.
                        If None, reads from GOOGLE_CALENDAR_ID env var (defaults to 'primary').
            token_path: Path to store OAuth2 token (defaults to 'token.json').
            time_zone: IANA zone naive datetimes are interpreted in.
                       If None, reads from FLOWDECK_TIME_ZONE env var (defaults to 'UTC').
        """
        super().__init__()
        self.credentials_path = credentials_path or os.getenv("GOOGLE_CALENDAR_CREDENTIALS_PATH", "credentials.json")
        self.calendar_id = calendar_id or os.getenv("GOOGLE_CALENDAR_ID", "primary")
        self.token_path = token_path
        self.time_zone = time_zone or os.getenv("FLOWDECK_TIME_ZONE", "UTC")
        self._zone = ZoneInfo(self.time_zone)
        self._last_poll: Optional[datetime] = None
        self.service = None

        if credentials is not None:
            self.creds = credentials
            self.service = build('calendar', 'v3', credentials=credentials)
        else:
            self._authenticate()

    def _authenticate(self):
        """Authenticate with Google Calendar API using OAuth2."""
        creds = None

        # Load existing token if available
        if os.path.exists(self.token_path):
            creds = Credentials.from_authorized_user_file(self.token_path, SCOPES)

        # If no valid credentials, get new ones
        if not creds or not creds.valid:
            if creds and creds.expired and creds.refresh_token:
                creds.refresh(Request())
            else:
                if not os.path.exists(self.credentials_path):
                    raise CalendarAccessError(
                        f"Google Calendar credentials not found at {self.credentials_path}. "
                        "Please download OAuth2 credentials from Google Cloud Console."
                    )

                flow = InstalledAppFlow.from_client_secrets_file(
                    self.credentials_path, SCOPES
                )
                creds = flow.run_local_server(port=0)

            # Save credentials for next run
            with open(self.token_path, 'w') as token:
                token.write(creds.to_json())

        self.creds = creds
        self.service = build('calendar', 'v3', credentials=creds)

    @property
    def has_access(self) -> bool:
        return self.service is not None

    # Conversion

    def _to_rfc3339(self, dt: datetime) -> str:
        return dt.replace(tzinfo=self._zone).isoformat()

    def _to_local(self, value: str) -> datetime:
        parsed = date_parser.isoparse(value)
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(self._zone).replace(tzinfo=None)
        return parsed

    def _event_body(self, title: str, start: datetime, end: datetime, notes: Optional[str]) -> dict:
        return {
            'summary': title,
            'description': notes,
            'start': {'dateTime': self._to_rfc3339(start), 'timeZone': self.time_zone},
            'end': {'dateTime': self._to_rfc3339(end), 'timeZone': self.time_zone},
        }

    def _to_calendar_event(self, item: dict) -> CalendarEvent:
        start = item.get('start', {})
        end = item.get('end', {})
        is_all_day = 'date' in start and 'dateTime' not in start

        if is_all_day:
            start_dt = datetime.combine(date_parser.isoparse(start['date']).date(), datetime.min.time())
            end_dt = datetime.combine(date_parser.isoparse(end['date']).date(), datetime.min.time())
        else:
            start_dt = self._to_local(start['dateTime'])
            end_dt = self._to_local(end['dateTime'])

        return CalendarEvent(
            event_id=item['id'],
            external_id=item.get('iCalUID'),
            title=item.get('summary') or "",
            notes=item.get('description'),
            start=start_dt,
            end=end_dt,
            is_all_day=is_all_day,
            has_attendees=bool(item.get('attendees')),
            has_recurrence_rules=bool(item.get('recurrence') or item.get('recurringEventId')),
            calendar_id=self.calendar_id,
        )

    # Reads

    def _list(self, **kwargs) -> List[dict]:
        items: List[dict] = []
        page_token = None
        while True:
            response = self.service.events().list(
                calendarId=self.calendar_id,
                pageToken=page_token,
                fields=f"items({EVENT_FIELDS}),nextPageToken",
                **kwargs
            ).execute()
            items.extend(response.get('items', []))
            page_token = response.get('nextPageToken')
            if not page_token:
                return items

    def fetch_events(self, start: datetime, end: datetime) -> List[CalendarEvent]:
        try:
            items = self._list(
                timeMin=self._to_rfc3339(start),
                timeMax=self._to_rfc3339(end),
                singleEvents=True,
                orderBy='startTime',
            )
        except HttpError as error:
            raise CalendarError(f"Failed to list calendar events: {error}") from error
        return [self._to_calendar_event(item) for item in items if item.get('status') != 'cancelled']

    def find_by_id(self, event_id: str) -> Optional[CalendarEvent]:
        try:
            item = self.service.events().get(calendarId=self.calendar_id, eventId=event_id).execute()
        except HttpError as error:
            if _status_code(error) in (404, 410):
                return None
            raise CalendarError(f"Failed to fetch calendar event {event_id}: {error}") from error
        if item.get('status') == 'cancelled':
            return None
        return self._to_calendar_event(item)

    def find_by_external_id(self, external_id: str) -> Optional[CalendarEvent]:
        try:
            items = self._list(iCalUID=external_id)
        except HttpError as error:
            raise CalendarError(f"Failed to look up iCalUID {external_id}: {error}") from error
        for item in items:
            if item.get('status') != 'cancelled':
                return self._to_calendar_event(item)
        return None

    def poll_for_changes(self, now: Optional[datetime] = None) -> bool:
        """Notify change listeners if any event was modified since the last poll.

        Google only pushes changes to public webhooks, so local runs poll.
        """
        now = now or datetime.now()
        since = self._last_poll or (now - timedelta(minutes=5))
        self._last_poll = now
        try:
            items = self._list(updatedMin=self._to_rfc3339(since), showDeleted=True)
        except HttpError as error:
            logger.warning(f"Calendar change poll failed: {error}")
            return False
        if items:
            logger.debug(f"{len(items)} calendar events changed since {since.isoformat()}")
            self.notify_changed()
            return True
        return False

    # Writes

    def create_event(
        self,
        title: str,
        start: datetime,
        end: datetime,
        notes: Optional[str] = None,
        calendar_id: Optional[str] = None,
    ) -> CalendarEvent:
        try:
            item = self.service.events().insert(
                calendarId=calendar_id or self.calendar_id,
                body=self._event_body(title, start, end, notes),
            ).execute()
        except HttpError as error:
            raise CalendarWriteError(f"Failed to create calendar event: {error}") from error
        return self._to_calendar_event(item)

    def update_event(self, event: CalendarEvent) -> CalendarEvent:
        try:
            item = self.service.events().patch(
                calendarId=event.calendar_id or self.calendar_id,
                eventId=event.event_id,
                body=self._event_body(event.title, event.start, event.end, event.notes),
            ).execute()
        except HttpError as error:
            raise CalendarWriteError(f"Failed to update calendar event {event.event_id}: {error}") from error
        return self._to_calendar_event(item)

    def delete_event(self, event: CalendarEvent) -> None:
        try:
            self.service.events().delete(
                calendarId=event.calendar_id or self.calendar_id,
                eventId=event.event_id,
            ).execute()
        except HttpError as error:
            if _status_code(error) in (404, 410):
                return
            raise CalendarWriteError(f"Failed to delete calendar event {event.event_id}: {error}") from error
