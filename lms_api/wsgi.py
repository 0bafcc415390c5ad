from lms_api import create_app

app = create_app(config_object=None)
