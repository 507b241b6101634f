# Report lifecycle constants

# Lifecycle States

# Created after store validation; evidence is being collected
# Writers: driver (evidence, incidents, ticket confirmation)
DRAFT = "draft"

# Live-support window open (timeoutAt = submittedAt + REPORT_TIMEOUT_MINUTES)
# Writers: driver (resolution), sweep (timeout)
SUBMITTED = "submitted"

# Driver confirmed the incident was resolved inside the support window
RESOLVED_BY_DRIVER = "resolved_by_driver"

# Support window expired before the driver confirmed resolution
TIMED_OUT = "timed_out"

# Commercial agent / admin closed the report
COMPLETED = "completed"

# Soft-deleted, retained for audit. Terminal.
ARCHIVED = "archived"

ALL_STATUSES = (DRAFT, SUBMITTED, RESOLVED_BY_DRIVER, TIMED_OUT, COMPLETED, ARCHIVED)


# Lifecycle Events

SUBMIT = "SUBMIT"
DRIVER_CONFIRMS_RESOLUTION = "DRIVER_CONFIRMS_RESOLUTION"
TIMEOUT = "TIMEOUT"
ADMIN_COMPLETES = "ADMIN_COMPLETES"
ARCHIVE = "ARCHIVE"

ALL_EVENTS = (SUBMIT, DRIVER_CONFIRMS_RESOLUTION, TIMEOUT, ADMIN_COMPLETES, ARCHIVE)

# Events a driver may request directly; the rest belong to the sweep and admins
DRIVER_EVENTS = (SUBMIT, DRIVER_CONFIRMS_RESOLUTION)


# Report Types

# Delivery with possible incidents, waste, ticket and return ticket
ENTREGA = "entrega"

# Store found closed; facade photo then live chat
TIENDA_CERRADA = "tienda_cerrada"

# Store scale problem; scale photo only
BASCULA = "bascula"

FLOW_REPORT_TYPES = (ENTREGA, TIENDA_CERRADA, BASCULA)

# Older report types still present in storage; no wizard exists for them
LEGACY_REPORT_TYPES = ("rechazo_completo", "rechazo_parcial", "devolucion", "faltante", "sobrante")

ALL_REPORT_TYPES = FLOW_REPORT_TYPES + LEGACY_REPORT_TYPES


# Closed-store auto-resolution outcome written by the timeout sweep
RESOLUTION_NO = "no"
