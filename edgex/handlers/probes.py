import datetime
import kopf
from edgex.handlers.edgex import names_in_queue

# Liveness probe
@kopf.on.probe(id='now')
def get_current_timestamp(**kwargs):
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


@kopf.on.probe(id='queued')
def get_queued_reconciliations(**kwargs):
    return len(names_in_queue)
