import json
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from .config import LOG_LEVEL
from .logging_config import configure_logging
from .controllers.usage import router as usage_router
from .routers.ui import router as ui_router

configure_logging(LOG_LEVEL)


class PrettyJSONResponse(JSONResponse):
    def render(self, content) -> bytes:
        return json.dumps(content, ensure_ascii=False, indent=2).encode("utf-8")


app = FastAPI(title="Course Usage Report", default_response_class=PrettyJSONResponse)
app.include_router(usage_router)
app.include_router(ui_router)
