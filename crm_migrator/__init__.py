"""CRM migration service: moves contacts, jobs and invoices out of CRM CSV exports."""
