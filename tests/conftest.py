import os
import tempfile

# Keep every settings-derived path out of the working tree
_scratch = tempfile.mkdtemp(prefix="listing-watch-tests-")
os.environ.setdefault("DATA_DIR", os.path.join(_scratch, "data"))
os.environ.setdefault("LOGS_DIR", os.path.join(_scratch, "logs"))
os.environ.setdefault("PIDS_DIR", os.path.join(_scratch, "pids"))
os.environ.setdefault("PROJECTS_FILE", os.path.join(_scratch, "config.json"))
# Never launch a real browser from the test-suite
os.environ.setdefault("USE_BROWSER", "false")
