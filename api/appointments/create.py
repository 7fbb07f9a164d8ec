"""Create a viewing appointment (customer booking)."""

from api._common import JsonHandler, run
from src.services.appointment_scheduler import create_appointment
from src.utils.errors import ForbiddenError
from src.utils.logging import correlation_context, get_structured_logger

logger = get_structured_logger(__name__)


class handler(JsonHandler):
    """POST {property_id, appointment_date, start_time, end_time, customer_notes?}."""

    def do_POST(self):
        with correlation_context(self.correlation_id()):
            try:
                body = self.read_json()
                customer_id = self.acting_user_id()
                if not customer_id:
                    self.write_json(401, {"error": "missing user"})
                    return
                # Customers book for themselves only
                if body.get("customer_id") not in (None, customer_id):
                    raise ForbiddenError("Cannot book an appointment for another customer")
                appointment = run(create_appointment(
                    property_id=body["property_id"],
                    customer_id=customer_id,
                    appointment_date=body["appointment_date"],
                    start_time=body["start_time"],
                    end_time=body["end_time"],
                    customer_notes=body.get("customer_notes"),
                ))
                self.write_json(201, appointment.model_dump(mode="json"))
            except Exception as e:
                logger.warning("Create appointment failed", error=str(e))
                self.write_error(e)
