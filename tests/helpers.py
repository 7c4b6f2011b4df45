from clip_media.core.dto import ResponsePlan
from clip_media.core.errors import WorkerChannelError
from clip_media.core.protocol import make_result_envelope

# Access token the server_config fixture pins
TOKEN = "test-token"


class ScriptedPool:
    """Collects envelopes; tests decide when and in what order replies arrive."""

    def __init__(self, fail_post: bool = False):
        self.listener = None
        self.posted = []
        self.fail_post = fail_post

    def set_listener(self, listener):
        self.listener = listener

    def post(self, envelope):
        if self.fail_post:
            raise WorkerChannelError("pool is down")
        self.posted.append(envelope)
        return "scripted-worker"

    def reply(self, envelope, status=200):
        plan = ResponsePlan(status, {"X-File": envelope["data"]["file_path"]})
        self.listener.on_message(make_result_envelope(envelope["id"], plan))
