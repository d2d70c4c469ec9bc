from locust import HttpUser, task, between
import random

class MemberUser(HttpUser):
    wait_time = between(0.1, 0.5)

    def on_start(self):
        # Sign up and log in a member for this simulated client
        n = random.randint(1, 1_000_000)
        self.email = f"load_{n}@example.com"
        self.client.post("/signup", data={
            "username": f"load{n}", "surname": "Test", "email": self.email,
            "phone": "000", "password": "secret",
        }, allow_redirects=False)
        r = self.client.post("/login", data={"email": self.email, "password": "secret"}, allow_redirects=False)
        self.logged_in = r.status_code == 303 and "error" not in r.headers.get("location", "")

    @task(3)
    def whoami(self):
        if not self.logged_in:
            return
        self.client.get("/api/user")

    @task(1)
    def pay(self):
        self.client.post("/api/payment", json={
            "fullname": "Load Test", "email": self.email, "package": random.choice(["monthly", "yearly"]),
            "card_number": "4111111111111111", "expiry_date": "12/30", "cvv": "123",
        })

    @task(1)
    def membership(self):
        if not self.logged_in:
            return
        self.client.get("/api/membership/me", name="/api/membership/me")
