from app.main import app
import os

if __name__ == "__main__":
    # Importing app.main initialises directories and schema. The hosting
    # environment may provide PORT; default to 3000 for local development.
    port = int(os.environ.get("PORT", 3000))
    app.run(host="0.0.0.0", port=port, threaded=True)
