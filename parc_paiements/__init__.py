"""
parc_paiements: pipeline de paiement des offres du parc (activités, événements, réservations d'espaces).

- Backend FastAPI: montant qui fait foi, PaymentIntent Stripe, finalisation idempotente (Supabase)
- Client checkout: coordinateur des trois phases (intent, confirmation carte, finalisation)
"""
