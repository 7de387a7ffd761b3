import os
from datetime import datetime

from locust import FastHttpUser, between, task


def get_log_file_name():
    run_name = os.environ.get("RUN_NAME")
    if run_name:
        return f"logs/{run_name}_locust_pool_distribution.log"
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return f"logs/locust_pool_distribution_{timestamp}.log"


class WebsiteUser(FastHttpUser):
    wait_time = between(0.1, 0.5)

    def on_start(self):
        # Use a single base log file for all requests
        self.log_file = get_log_file_name()
        os.makedirs(os.path.dirname(self.log_file), exist_ok=True)

    @task
    def version(self):
        with self.client.get("/version", catch_response=True) as response:
            pool = "unknown"
            attempts = "0"
            if response is not None and response.headers is not None:
                pool = response.headers.get("X-App-Pool", "unknown")
                attempts = response.headers.get("X-Upstream-Attempts", "0")
            if response.status_code != 200:
                response.failure(f"status {response.status_code} from pool {pool}")
            # One line per request: status,pool,attempts
            with open(self.log_file, "a") as f:
                f.write(f"{response.status_code},{pool},{attempts}\n")
