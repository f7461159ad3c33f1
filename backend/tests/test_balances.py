def post_bill(client, headers, participant_ids, amount, currency="INR"):
    response = client.post("/bills", headers=headers, json={
        "merchant_name": "Groceries",
        "currency": currency,
        "items": [{"name": "Basket", "unit_price": amount}],
        "participant_ids": participant_ids,
    })
    assert response.status_code == 200
    return response.json()


def test_pair_balance(client, auth_headers, other_headers, test_user, other_user):
    post_bill(client, auth_headers, [other_user.id], 6000)   # Bob owes Alice 3000
    post_bill(client, other_headers, [test_user.id], 2000)   # Alice owes Bob 1000

    response = client.get(f"/balances/{other_user.id}", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["owes"] == 1000
    assert data["owed_to"] == 3000
    # Positive if WE are owed
    assert data["net"] == 2000
    assert data["full_name"] == "Bob"

    # Same balance from Bob's side
    data = client.get(f"/balances/{test_user.id}", headers=other_headers).json()
    assert data["net"] == -2000


def test_pair_balance_per_currency(client, auth_headers, other_user):
    post_bill(client, auth_headers, [other_user.id], 1000, currency="USD")

    inr = client.get(f"/balances/{other_user.id}", headers=auth_headers).json()
    usd = client.get(f"/balances/{other_user.id}?currency=USD", headers=auth_headers).json()
    assert inr["net"] == 0
    assert usd["net"] == 500
    assert usd["currency"] == "USD"


def test_cancelled_bill_drops_out_of_balance(client, auth_headers, other_user):
    bill = post_bill(client, auth_headers, [other_user.id], 6000)
    client.post(f"/bills/{bill['id']}/cancel", headers=auth_headers)

    data = client.get(f"/balances/{other_user.id}", headers=auth_headers).json()
    assert data["owed_to"] == 0


def test_balance_with_unknown_user(client, auth_headers):
    assert client.get("/balances/ghost", headers=auth_headers).status_code == 404


def test_balance_summary(client, auth_headers, other_headers, test_user, other_user, third_user):
    post_bill(client, auth_headers, [other_user.id, third_user.id], 9000)  # Bob and Carol owe 3000 each
    post_bill(client, other_headers, [test_user.id], 1000)  # Alice owes Bob 500

    response = client.get("/users/balance", headers=auth_headers)
    assert response.status_code == 200
    summary = response.json()
    assert summary["currency"] == "INR"
    assert summary["owes"] == 500
    assert summary["owed"] == 6000

    by_user = {b["user_id"]: b for b in summary["balances"]}
    assert by_user[other_user.id]["net"] == 2500
    assert by_user[third_user.id]["net"] == 3000
    assert by_user[third_user.id]["full_name"] == "Carol"
