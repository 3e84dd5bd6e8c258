import azure.functions as func

from routes.jobs import bp as jobs_bp

app = func.FunctionApp(http_auth_level=func.AuthLevel.ANONYMOUS)
app.register_functions(jobs_bp)
